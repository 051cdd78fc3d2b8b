"""HTTP client for the share registry backend."""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from blockshare.errors import ConfigurationError, RegistryError
from blockshare.http_session import build_session
from blockshare.models import SharePayload, ShareRecord
from blockshare.sources.base_source import ShareRegistry

logger = logging.getLogger('blockshare.sources.share')


class ShareApiClient(ShareRegistry):
    """Share registry reached over its REST API with a bearer token."""

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        server_url: str,
        api_token: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 2,
        session: Optional[requests.Session] = None
    ):
        if not server_url or not api_token:
            raise ConfigurationError(
                "Share server URL and API token are required",
                fields=[name for name, value in (('server_url', server_url), ('api_token', api_token)) if not value]
            )

        self.server_url = server_url.rstrip('/')
        self.timeout = timeout
        self.session = session or build_session(max_retries=max_retries)
        self.session.headers.update({
            'Authorization': f'Bearer {api_token}',
            'Accept': 'application/json',
        })
        logger.debug(f"Initialized share registry client for {self.server_url}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ShareApiClient':
        share = config.get('share', {})
        return cls(
            server_url=share.get('server_url', ''),
            api_token=share.get('api_token', ''),
            timeout=share.get('timeout', cls.DEFAULT_TIMEOUT),
        )

    def _make_request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        url = f"{self.server_url}{endpoint}"
        logger.debug(f"Registry request: {method} {url}")
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RegistryError(f"Share registry unreachable: {e}") from e

    @staticmethod
    def _unwrap(response: requests.Response) -> Any:
        """Return ``data`` from a ``{code, msg, data}`` reply or raise RegistryError."""
        if not response.ok:
            raise RegistryError(
                f"Share registry returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code
            )
        try:
            envelope = response.json()
        except ValueError as e:
            raise RegistryError("Share registry returned a non-JSON body", status_code=response.status_code) from e
        if envelope.get('code', 0) != 0:
            raise RegistryError(envelope.get('msg') or 'Share registry rejected the request',
                                status_code=response.status_code)
        return envelope.get('data') or {}

    def create_share(self, payload: SharePayload) -> ShareRecord:
        response = self._make_request(
            'POST',
            '/api/share/create',
            json=payload.to_dict(),
            headers={'X-Base-URL': self.server_url},
        )
        data = self._unwrap(response)
        record = ShareRecord.from_response(data, payload)
        logger.info(f"Share {'reused' if record.reused else 'created'}: {record.share_id} -> {record.share_url}")
        return record

    def delete_share(self, share_id: str) -> bool:
        response = self._make_request('DELETE', f"/api/share/{quote(share_id, safe='')}")
        if response.status_code == 404:
            logger.info(f"Share {share_id} already removed from registry")
            return False
        self._unwrap(response)
        logger.info(f"Share deleted: {share_id}")
        return True

    def delete_shares(self, share_ids: List[str]) -> Dict[str, List[str]]:
        response = self._make_request('DELETE', '/api/share/batch', json={'shareIds': list(share_ids)})
        data = self._unwrap(response)
        return {
            'deleted': list(data.get('deleted') or []),
            'notFound': list(data.get('notFound') or []),
        }

    def list_shares(self, page: int = 1, size: int = 100) -> Tuple[List[ShareRecord], int]:
        response = self._make_request(
            'GET',
            '/api/share/list',
            params={'page': page, 'size': size},
            headers={'X-Base-URL': self.server_url},
        )
        data = self._unwrap(response)
        records = [ShareRecord.from_listing(item) for item in data.get('items') or []]
        total = int(data.get('total') or 0)
        logger.debug(f"Share listing page {page}: {len(records)} of {total}")
        return records, total


__all__ = ['ShareApiClient']
