"""S3-compatible object storage client for published assets."""

import hashlib
import ipaddress
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional
from urllib.parse import quote

from blockshare.errors import (
    ConfigurationError,
    DeleteError,
    NetworkTransportError,
    PublisherError,
    UploadError,
)
from blockshare.models import (
    AddressingStyle,
    DeleteResult,
    StorageConfig,
    UploadedAsset,
    UploadProgress,
    UploadStatus,
)
from blockshare.storage.signing import RequestDescription, SigningStrategy, create_signer
from blockshare.storage.transport import HttpRequest, RequestsTransport, Transport

logger = logging.getLogger('blockshare.storage.client')

DEFAULT_PATH_PREFIX = 'siyuan-share'

CONTENT_TYPES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'svg': 'image/svg+xml',
    'pdf': 'application/pdf',
    'mp4': 'video/mp4',
    'mp3': 'audio/mpeg',
    'zip': 'application/zip',
    'txt': 'text/plain',
    'md': 'text/markdown',
}

ProgressCallback = Callable[[UploadProgress], None]


def guess_content_type(file_name: str) -> str:
    ext = os.path.splitext(file_name)[1].lstrip('.').lower()
    return CONTENT_TYPES.get(ext, 'application/octet-stream')


def content_hash(data: bytes) -> str:
    """SHA-256 of ``data``, first 16 hex characters."""
    return hashlib.sha256(data).hexdigest()[:16]


@dataclass(frozen=True)
class ObjectAddress:
    """Where an object lives and how its requests must be signed."""

    url: str
    host: str
    canonical_uri: str
    style: AddressingStyle


class ObjectStorageClient:
    """
    Uploads and deletes objects with provider-specific request signing.

    The signing strategy is chosen once from the configured provider. A
    transport-level failure on the direct route is retried once through the
    fallback transport when one is configured.
    """

    def __init__(
        self,
        config: StorageConfig,
        transport: Optional[Transport] = None,
        fallback_transport: Optional[Transport] = None,
        signer: Optional[SigningStrategy] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        """
        Args:
            config: Storage settings
            transport: Direct transport, a RequestsTransport when None
            fallback_transport: Used once after a NetworkTransportError
            signer: Signing strategy, derived from ``config.provider`` when None
            clock: Returns the current UTC time; used for signing and object keys
        """
        self.config = config
        self.transport = transport or RequestsTransport(timeout=config.timeout, max_retries=config.max_retries)
        self.fallback_transport = fallback_transport
        self.signer = signer or create_signer(config)
        self.clock = clock
        self.stats = {
            'uploaded': 0,
            'upload_failed': 0,
            'deleted': 0,
            'delete_failed': 0,
            'proxy_fallbacks': 0,
        }

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def _split_endpoint(self):
        """Return ``(scheme, endpoint_without_scheme)``; https when no scheme is given."""
        endpoint = self.config.endpoint.strip()
        scheme = 'https'
        lowered = endpoint.lower()
        for prefix in ('https://', 'http://'):
            if lowered.startswith(prefix):
                scheme = prefix[:-3]
                endpoint = endpoint[len(prefix):]
                break
        return scheme, endpoint.rstrip('/')

    @staticmethod
    def _is_ip(host: str) -> bool:
        try:
            ipaddress.ip_address(host.strip('[]'))
        except ValueError:
            return False
        return True

    def resolve_addressing(self) -> AddressingStyle:
        """
        Decide between path-style and virtual-hosted URLs.

        Returns:
            AddressingStyle.PATH or AddressingStyle.VIRTUAL
        """
        if self.config.addressing != AddressingStyle.AUTO:
            return self.config.addressing

        scheme, endpoint = self._split_endpoint()
        host = endpoint.lower()
        has_port = False
        if host.startswith('['):
            has_port = ']:' in host
            host = host.split(']')[0] + ']'
        elif host.count(':') == 1:
            host, _, port = host.partition(':')
            has_port = port.isdigit()

        if has_port or self._is_ip(host) or host == 'localhost' or host.endswith('.localhost'):
            return AddressingStyle.PATH
        if not (host == 'amazonaws.com' or host.endswith('.amazonaws.com')):
            return AddressingStyle.PATH
        if '.' in self.config.bucket and scheme == 'https':
            return AddressingStyle.PATH
        return AddressingStyle.VIRTUAL

    @staticmethod
    def encode_key(key: str) -> str:
        return '/'.join(quote(part, safe='') for part in key.split('/'))

    def address(self, key: str) -> ObjectAddress:
        scheme, endpoint = self._split_endpoint()
        bucket = self.config.bucket
        encoded_key = self.encode_key(key)
        style = self.resolve_addressing()

        if style == AddressingStyle.PATH:
            host = endpoint
            canonical_uri = f"/{quote(bucket, safe='')}/{encoded_key}"
        else:
            host = f"{bucket}.{endpoint}"
            canonical_uri = f"/{encoded_key}"

        return ObjectAddress(
            url=f"{scheme}://{host}{canonical_uri}",
            host=host,
            canonical_uri=canonical_uri,
            style=style,
        )

    def public_url(self, key: str) -> str:
        if self.config.custom_domain:
            return f"{self.config.custom_domain.rstrip('/')}/{self.encode_key(key)}"
        return self.address(key).url

    def build_object_key(self, file_name: str, hash_hex: str) -> str:
        """``{prefix}/{epoch_ms}-{hash}{ext}`` with the prefix defaulting to ``siyuan-share``."""
        prefix = (self.config.path_prefix or '').strip('/') or DEFAULT_PATH_PREFIX
        ext = os.path.splitext(file_name)[1].lower()
        epoch_ms = int(self.clock().timestamp() * 1000)
        return f"{prefix}/{epoch_ms}-{hash_hex}{ext}"

    def build_request(self, method: str, key: str, body: bytes = b'', content_type: str = '') -> HttpRequest:
        """Address and sign a request for ``key``."""
        address = self.address(key)
        description = RequestDescription(
            method=method,
            host=address.host,
            canonical_uri=address.canonical_uri,
            bucket=self.config.bucket,
            key=key,
            content_type=content_type,
        )
        headers = self.signer.sign(description, self.clock())
        return HttpRequest(method=method, url=address.url, headers=headers, body=body)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _ensure_ready(self) -> None:
        if not self.config.enabled:
            raise ConfigurationError("Object storage is disabled")
        self.config.validate()

    def _send(self, request: HttpRequest, progress=None):
        """Send directly; on a transport failure retry once through the fallback."""
        try:
            return self.transport.send(request, progress)
        except NetworkTransportError as e:
            if self.fallback_transport is None:
                raise
            logger.warning(f"Direct {request.method} failed ({e}); retrying through forward proxy")
            self.stats['proxy_fallbacks'] += 1
            try:
                return self.fallback_transport.send(request, progress)
            except PublisherError as proxy_error:
                raise NetworkTransportError(
                    f"Forward proxy failed after direct failure: {proxy_error}",
                    url=request.url
                ) from proxy_error

    def upload(
        self,
        file_name: str,
        data: bytes,
        progress_callback: Optional[ProgressCallback] = None,
        precomputed_hash: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> UploadedAsset:
        """
        Upload one file and return its public location.

        Args:
            file_name: Local path or name; its extension drives the key and type
            data: File bytes
            progress_callback: Receives pending, uploading and final events
            precomputed_hash: Content hash when the caller already has it
            content_type: MIME type, guessed from the extension when None

        Returns:
            UploadedAsset for the stored object

        Raises:
            ConfigurationError: Storage disabled or incomplete; nothing was sent
            UploadError: The store rejected the upload or both routes failed
        """
        self._ensure_ready()

        total = len(data)
        hash_hex = precomputed_hash or content_hash(data)
        content_type = content_type or guess_content_type(file_name)
        key = self.build_object_key(file_name, hash_hex)

        def emit(status: UploadStatus, sent: int, error: Optional[str] = None) -> None:
            if progress_callback is not None:
                progress_callback(UploadProgress(file_name, sent, total, status, error))

        emit(UploadStatus.PENDING, 0)
        emit(UploadStatus.UPLOADING, 0)

        request = self.build_request('PUT', key, body=data, content_type=content_type)
        try:
            response = self._send(request, lambda sent: emit(UploadStatus.UPLOADING, sent))
        except NetworkTransportError as e:
            self.stats['upload_failed'] += 1
            emit(UploadStatus.ERROR, 0, str(e))
            raise UploadError(f"Upload of {file_name} failed: {e}", object_key=key) from e

        if not response.ok:
            self.stats['upload_failed'] += 1
            message = f"Upload of {file_name} rejected with HTTP {response.status_code}"
            emit(UploadStatus.ERROR, 0, message)
            raise UploadError(message, object_key=key, status_code=response.status_code)

        self.stats['uploaded'] += 1
        emit(UploadStatus.SUCCESS, total)
        asset = UploadedAsset(
            local_path=file_name,
            object_key=key,
            public_url=self.public_url(key),
            content_type=content_type,
            size_bytes=total,
            content_hash=hash_hex,
            uploaded_at=int(self.clock().timestamp() * 1000),
        )
        logger.info(f"Uploaded {file_name} -> {asset.public_url}")
        return asset

    def delete(self, key: str) -> None:
        """
        Delete one object. A missing object counts as deleted.

        Raises:
            ConfigurationError: Storage disabled or incomplete; nothing was sent
            DeleteError: The store rejected the delete or both routes failed
        """
        self._ensure_ready()

        request = self.build_request('DELETE', key)
        try:
            response = self._send(request)
        except NetworkTransportError as e:
            self.stats['delete_failed'] += 1
            raise DeleteError(f"Delete of {key} failed: {e}", object_key=key) from e

        if response.status_code == 404:
            logger.debug(f"Object already gone: {key}")
        elif not response.ok:
            self.stats['delete_failed'] += 1
            raise DeleteError(
                f"Delete of {key} rejected with HTTP {response.status_code}",
                object_key=key,
                status_code=response.status_code
            )
        self.stats['deleted'] += 1
        logger.info(f"Deleted object {key}")

    def delete_many(self, keys: List[str]) -> DeleteResult:
        """
        Delete each key, collecting per-key outcomes without stopping on failures.

        Raises:
            ConfigurationError: Storage disabled or incomplete; nothing was sent
        """
        self._ensure_ready()

        result = DeleteResult()
        for key in keys:
            try:
                self.delete(key)
            except DeleteError as e:
                logger.warning(str(e))
                result.failed.append({'key': key, 'error': str(e)})
            else:
                result.success.append(key)
        return result


__all__ = [
    'ObjectStorageClient',
    'ObjectAddress',
    'guess_content_type',
    'content_hash',
    'DEFAULT_PATH_PREFIX',
]
