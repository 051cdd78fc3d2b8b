"""Request signing for S3-compatible object stores.

Both strategies are pure functions of the request description and a clock
value. They return the headers to send; they never perform I/O.
"""

import base64
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict

from blockshare.errors import SigningError
from blockshare.models import StorageConfig, StorageProvider

logger = logging.getLogger('blockshare.storage.signing')

UNSIGNED_PAYLOAD = 'UNSIGNED-PAYLOAD'
AWS_ALGORITHM = 'AWS4-HMAC-SHA256'
AWS_SIGNED_HEADERS = 'host;x-amz-content-sha256;x-amz-date'


@dataclass(frozen=True)
class RequestDescription:
    """What a signer needs to know about one object request."""

    method: str
    host: str
    canonical_uri: str
    bucket: str
    key: str
    content_type: str = ''


def _hmac_sha256(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode('utf-8'), hashlib.sha256).digest()


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class SigningStrategy(ABC):
    """Produces authentication headers for one provider."""

    def __init__(self, access_key_id: str, secret_access_key: str):
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key

    @abstractmethod
    def sign(self, request: RequestDescription, now: datetime) -> Dict[str, str]:
        """
        Build the headers that authenticate ``request`` at time ``now``.

        Args:
            request: Method, host, URI and object details
            now: Signing time; naive values are taken as UTC

        Returns:
            Headers to add to the request

        Raises:
            SigningError: If the request cannot be signed
        """


class AwsSigV4Signer(SigningStrategy):
    """AWS Signature Version 4 with an unsigned payload."""

    def __init__(self, access_key_id: str, secret_access_key: str, region: str, service: str = 's3'):
        super().__init__(access_key_id, secret_access_key)
        self.region = region
        self.service = service

    def credential_scope(self, date_stamp: str) -> str:
        return f"{date_stamp}/{self.region}/{self.service}/aws4_request"

    def canonical_request(self, request: RequestDescription, amz_date: str) -> str:
        canonical_headers = (
            f"host:{request.host}\n"
            f"x-amz-content-sha256:{UNSIGNED_PAYLOAD}\n"
            f"x-amz-date:{amz_date}\n"
        )
        return '\n'.join([
            request.method.upper(),
            request.canonical_uri,
            '',
            canonical_headers,
            AWS_SIGNED_HEADERS,
            UNSIGNED_PAYLOAD,
        ])

    def string_to_sign(self, canonical_request: str, amz_date: str, date_stamp: str) -> str:
        request_hash = hashlib.sha256(canonical_request.encode('utf-8')).hexdigest()
        return '\n'.join([AWS_ALGORITHM, amz_date, self.credential_scope(date_stamp), request_hash])

    def signing_key(self, date_stamp: str) -> bytes:
        k_date = _hmac_sha256(('AWS4' + self.secret_access_key).encode('utf-8'), date_stamp)
        k_region = _hmac_sha256(k_date, self.region)
        k_service = _hmac_sha256(k_region, self.service)
        return _hmac_sha256(k_service, 'aws4_request')

    def sign(self, request: RequestDescription, now: datetime) -> Dict[str, str]:
        if not self.region:
            raise SigningError("AWS SigV4 signing requires a region")

        now = _as_utc(now)
        amz_date = now.strftime('%Y%m%dT%H%M%SZ')
        date_stamp = now.strftime('%Y%m%d')

        canonical = self.canonical_request(request, amz_date)
        to_sign = self.string_to_sign(canonical, amz_date, date_stamp)
        signature = hmac.new(self.signing_key(date_stamp), to_sign.encode('utf-8'), hashlib.sha256).hexdigest()

        logger.debug(f"SigV4 canonical request for {request.method} {request.canonical_uri}:\n{canonical}")

        headers = {
            'x-amz-date': amz_date,
            'x-amz-content-sha256': UNSIGNED_PAYLOAD,
            'Authorization': (
                f"{AWS_ALGORITHM} "
                f"Credential={self.access_key_id}/{self.credential_scope(date_stamp)}, "
                f"SignedHeaders={AWS_SIGNED_HEADERS}, "
                f"Signature={signature}"
            ),
        }
        if request.content_type:
            headers['Content-Type'] = request.content_type
        return headers


class OssSigner(SigningStrategy):
    """Aliyun OSS header signature (HMAC-SHA1 over a fixed string-to-sign)."""

    def string_to_sign(self, request: RequestDescription, http_date: str) -> str:
        return '\n'.join([
            request.method.upper(),
            '',
            request.content_type,
            http_date,
            f"/{request.bucket}/{request.key}",
        ])

    def sign(self, request: RequestDescription, now: datetime) -> Dict[str, str]:
        http_date = format_datetime(_as_utc(now), usegmt=True)
        to_sign = self.string_to_sign(request, http_date)
        digest = hmac.new(self.secret_access_key.encode('utf-8'), to_sign.encode('utf-8'), hashlib.sha1).digest()
        signature = base64.b64encode(digest).decode('ascii')

        headers = {
            'Date': http_date,
            'Authorization': f"OSS {self.access_key_id}:{signature}",
        }
        if request.content_type:
            headers['Content-Type'] = request.content_type
        return headers


def create_signer(config: StorageConfig) -> SigningStrategy:
    """Pick the signing strategy for the configured provider."""
    if config.provider == StorageProvider.OSS:
        return OssSigner(config.access_key_id, config.secret_access_key)
    if config.provider == StorageProvider.AWS:
        return AwsSigV4Signer(config.access_key_id, config.secret_access_key, config.region)
    raise SigningError(f"Unsupported storage provider: {config.provider}")


__all__ = [
    'RequestDescription',
    'SigningStrategy',
    'AwsSigV4Signer',
    'OssSigner',
    'create_signer',
    'UNSIGNED_PAYLOAD',
]
