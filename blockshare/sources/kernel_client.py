"""HTTP client for the SiYuan kernel API."""

import logging
import time
from typing import Any, Dict, Optional

import requests

from blockshare.errors import FetchError, ParseError, RequestTimeoutError
from blockshare.http_session import build_session
from blockshare.sources.base_source import ContentSource

logger = logging.getLogger('blockshare.sources.kernel')


class KernelClient(ContentSource):
    """Content source backed by a running kernel, authenticated with its API token."""

    DEFAULT_BASE_URL = 'http://127.0.0.1:6806'
    DEFAULT_TIMEOUT = 20

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str = '',
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 2,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            base_url: Kernel base URL
            token: Kernel API token, sent as ``Authorization: Token ...``
            timeout: Default per-request timeout in seconds
            max_retries: Retries on transient HTTP statuses
            session: Preconfigured session, mainly for tests
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or build_session(max_retries=max_retries)
        if token:
            self.session.headers['Authorization'] = f'Token {token}'
        logger.debug(f"Initialized kernel client for {self.base_url}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'KernelClient':
        kernel = config.get('kernel', {})
        return cls(
            base_url=kernel.get('base_url') or cls.DEFAULT_BASE_URL,
            token=kernel.get('token') or '',
            timeout=kernel.get('timeout', cls.DEFAULT_TIMEOUT),
        )

    def _request(self, method: str, endpoint: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        start_time = time.time()
        logger.debug(f"Kernel request: {method} {url}")
        try:
            response = self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise RequestTimeoutError(f"Kernel request timed out: {method} {url}", target=url) from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Kernel request failed: {method} {url}: {e}", target=url) from e

        logger.debug(f"Kernel response: {response.status_code} {url} ({time.time() - start_time:.3f}s)")
        if not response.ok:
            raise FetchError(
                f"Kernel returned HTTP {response.status_code} for {endpoint}",
                target=url,
                status_code=response.status_code
            )
        return response

    def _post_api(self, endpoint: str, body: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        """POST to a kernel API endpoint and unwrap its ``{code, msg, data}`` envelope."""
        response = self._request('POST', endpoint, timeout=timeout, json=body)
        try:
            envelope = response.json()
        except ValueError as e:
            raise ParseError(f"Kernel returned non-JSON body for {endpoint}") from e

        if not isinstance(envelope, dict):
            raise ParseError(f"Kernel returned unexpected body for {endpoint}")
        if envelope.get('code', 0) != 0:
            raise FetchError(
                f"Kernel error for {endpoint}: {envelope.get('msg') or 'unknown error'}",
                target=endpoint
            )
        return envelope.get('data')

    def fetch_block_content(self, block_id: str, timeout: Optional[float] = None) -> str:
        data = self._post_api('/api/block/getBlockKramdown', {'id': block_id, 'mode': 'md'}, timeout=timeout)
        if not isinstance(data, dict) or not data.get('kramdown'):
            raise ParseError(f"Kernel returned no kramdown for block {block_id}")
        return data['kramdown']

    def fetch_binary(self, local_path: str) -> bytes:
        response = self._request('GET', local_path.lstrip('/'))
        logger.debug(f"Fetched {local_path} ({len(response.content)} bytes)")
        return response.content

    def forward_proxy(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        payload_b64: str
    ) -> Dict[str, Any]:
        body = {
            'url': url,
            'method': method,
            'headers': headers,
            'payload': payload_b64,
            'payloadEncoding': 'base64',
        }
        data = self._post_api('/api/network/forwardProxy', body)
        if not isinstance(data, dict):
            raise ParseError("Kernel forward proxy returned no acknowledgement")
        logger.debug(f"Forward proxy {method} {url} -> {data.get('status')}")
        return data


__all__ = ['KernelClient']
