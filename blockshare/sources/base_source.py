"""Collaborator interfaces for the document kernel and the share registry."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple

from blockshare.models import SharePayload, ShareRecord


class ContentSource(ABC):
    """Host kernel that serves native block content and local binaries."""

    @abstractmethod
    def fetch_block_content(self, block_id: str, timeout: Optional[float] = None) -> str:
        """
        Fetch the native kramdown of a block or document.

        Args:
            block_id: Block or document id
            timeout: Per-call timeout in seconds, source default when None

        Returns:
            Native kramdown text

        Raises:
            FetchError: Kernel unreachable or answered with an error
            RequestTimeoutError: The call exceeded its timeout
            ParseError: The answer carried no kramdown
        """

    @abstractmethod
    def fetch_binary(self, local_path: str) -> bytes:
        """
        Read a local asset such as ``assets/image-1.png``.

        Raises:
            FetchError: The asset could not be read
        """

    @abstractmethod
    def forward_proxy(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        payload_b64: str
    ) -> Dict[str, Any]:
        """
        Ask the kernel to perform an HTTP request on our behalf.

        Args:
            url: Target URL
            method: HTTP method
            headers: Request headers without ``Host``
            payload_b64: Base64 encoded request body

        Returns:
            The kernel acknowledgement; ``status`` carries the target's HTTP status

        Raises:
            FetchError: The proxy call failed
        """


class ShareRegistry(ABC):
    """Remote backend that stores shares and serves the public viewer."""

    @abstractmethod
    def create_share(self, payload: SharePayload) -> ShareRecord:
        """Submit a payload and return the acknowledgement record."""

    @abstractmethod
    def delete_share(self, share_id: str) -> bool:
        """Delete one share. Returns False when the registry did not know it."""

    @abstractmethod
    def delete_shares(self, share_ids: List[str]) -> Dict[str, List[str]]:
        """Delete several shares; returns ``{'deleted': [...], 'notFound': [...]}``."""

    @abstractmethod
    def list_shares(self, page: int = 1, size: int = 100) -> Tuple[List[ShareRecord], int]:
        """
        Fetch one page of the shares the registry holds for this token.

        Args:
            page: 1-based page number
            size: Page size

        Returns:
            (records on this page, total number of shares)

        Raises:
            RegistryError: The registry was unreachable or rejected the request
        """

    def iter_shares(self, page_size: int = 100, limit: Optional[int] = None) -> Iterator[ShareRecord]:
        """Walk the listing page by page until it is exhausted or ``limit`` records were yielded."""
        page = 1
        seen = 0
        while True:
            records, total = self.list_shares(page, page_size)
            for record in records:
                yield record
                seen += 1
                if limit is not None and seen >= limit:
                    return
            if not records or page * page_size >= total:
                return
            page += 1

    def find_share_by_doc(self, doc_id: str, page_size: int = 50) -> Optional[ShareRecord]:
        for record in self.iter_shares(page_size):
            if record.doc_id == doc_id:
                return record
        return None


__all__ = ['ContentSource', 'ShareRegistry']
