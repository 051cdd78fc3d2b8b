"""Transports that carry signed object-store requests.

``RequestsTransport`` talks to the store directly. ``ProxyTransport`` hands
the serialized request to the kernel's forward proxy, which is used when the
direct route fails below HTTP (CORS, DNS, TLS, refused connections).
"""

import base64
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import requests

from blockshare.errors import NetworkTransportError
from blockshare.http_session import build_session
from blockshare.sources.base_source import ContentSource

logger = logging.getLogger('blockshare.storage.transport')

ProgressFn = Callable[[int], None]


@dataclass
class HttpRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b''


@dataclass
class HttpResponse:
    status_code: int
    text: str = ''

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(ABC):
    """Sends one request and returns its HTTP status."""

    @abstractmethod
    def send(self, request: HttpRequest, progress: Optional[ProgressFn] = None) -> HttpResponse:
        """
        Args:
            request: Fully signed request
            progress: Called with the cumulative number of body bytes sent

        Returns:
            HttpResponse for any HTTP answer, including error statuses

        Raises:
            NetworkTransportError: No HTTP answer was obtained
        """


class _ProgressReader(io.RawIOBase):
    """Readable body that reports how many bytes the HTTP layer has consumed."""

    def __init__(self, data: bytes, progress: ProgressFn, chunk_size: int = 64 * 1024):
        super().__init__()
        self._buffer = io.BytesIO(data)
        self._size = len(data)
        self._progress = progress
        self._chunk_size = chunk_size

    def __len__(self) -> int:
        return self._size

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._buffer.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._buffer.seek(offset, whence)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0 or size > self._chunk_size:
            size = self._chunk_size
        chunk = self._buffer.read(size)
        if chunk:
            self._progress(self._buffer.tell())
        return chunk

    def readinto(self, b) -> int:
        chunk = self.read(len(b))
        b[:len(chunk)] = chunk
        return len(chunk)


class RequestsTransport(Transport):
    """Direct HTTP transport over a retrying requests session."""

    def __init__(self, timeout: float = 60.0, max_retries: int = 2, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or build_session(max_retries=max_retries)

    def send(self, request: HttpRequest, progress: Optional[ProgressFn] = None) -> HttpResponse:
        data = request.body
        if progress is not None and request.body:
            data = _ProgressReader(request.body, progress)

        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=data,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NetworkTransportError(f"{request.method} {request.url} failed: {e}", url=request.url) from e

        logger.debug(f"{request.method} {request.url} -> {response.status_code}")
        return HttpResponse(status_code=response.status_code, text=response.text[:500])


class ProxyTransport(Transport):
    """Relays requests through the content source's forward proxy."""

    def __init__(self, source: ContentSource):
        self.source = source

    @staticmethod
    def serialize(request: HttpRequest) -> Dict[str, object]:
        """Wire form of a proxied request: Host stripped, body Base64 encoded."""
        return {
            'url': request.url,
            'method': request.method,
            'headers': {k: v for k, v in request.headers.items() if k.lower() != 'host'},
            'payload': base64.b64encode(request.body).decode('ascii'),
        }

    def send(self, request: HttpRequest, progress: Optional[ProgressFn] = None) -> HttpResponse:
        wire = self.serialize(request)
        logger.debug(f"Proxying {request.method} {request.url} ({len(request.body)} bytes)")
        ack = self.source.forward_proxy(wire['url'], wire['method'], wire['headers'], wire['payload'])
        if progress is not None:
            progress(len(request.body))
        status = ack.get('status') if isinstance(ack, dict) else None
        return HttpResponse(status_code=status if isinstance(status, int) else 200)


__all__ = [
    'HttpRequest',
    'HttpResponse',
    'Transport',
    'RequestsTransport',
    'ProxyTransport',
]
