"""Cycle-safe resolution of transitive block references."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from blockshare.converters.kramdown_transformer import find_block_references, transform
from blockshare.errors import CycleDetected, DepthExceeded, PublisherError
from blockshare.models import BlockReference, ResolutionState
from blockshare.resolver.arena import ResolutionArena
from blockshare.sources.base_source import ContentSource

logger = logging.getLogger('blockshare.resolver')


@dataclass(frozen=True)
class _Occurrence:
    block_id: str
    display_text: Optional[str]
    depth: int
    path: Tuple[str, ...]


class ReferenceResolver:
    """
    Resolves every block reachable through ``((id))`` tokens.

    Resolution runs level by level. All state changes happen on the calling
    thread between levels; only the content fetches of one level run on the
    worker pool. A block already resolving when another occurrence of it is
    seen gets that occurrence added to its count instead of a second fetch.
    """

    DEFAULT_MAX_DEPTH = 5
    DEFAULT_MAX_WORKERS = 4
    DEFAULT_FETCH_TIMEOUT = 10.0

    def __init__(
        self,
        source: ContentSource,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_workers: int = DEFAULT_MAX_WORKERS,
        fetch_timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
        transformer: Callable[[str], str] = transform
    ):
        """
        Args:
            source: Content source used to fetch block kramdown
            max_depth: Levels below the root that may be resolved
            max_workers: Concurrent fetches per level
            fetch_timeout: Timeout for each individual fetch
            transformer: Native to Markdown conversion applied to fetched content
        """
        self.source = source
        self.max_depth = max_depth
        self.max_workers = max_workers
        self.fetch_timeout = fetch_timeout
        self.transformer = transformer
        self.arena = ResolutionArena()
        self.dropped: List[PublisherError] = []

    def resolve_all(self, root_content: str, root_id: Optional[str] = None) -> List[BlockReference]:
        """
        Resolve all references reachable from a native document.

        Args:
            root_content: Native kramdown of the document
            root_id: Id of the document itself; references back to it count as cycles

        Returns:
            BlockReference list sorted by descending ref_count
        """
        self.arena.clear()
        self.dropped = []

        root_path = (root_id,) if root_id else ()
        frontier = [
            _Occurrence(token.block_id, token.display_text, 0, root_path)
            for token in find_block_references(root_content, unique=False)
        ]
        if not frontier:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            while frontier:
                claimed = self._claim(frontier)
                frontier = self._fetch_level(executor, claimed)

        references = self.arena.resolved()
        logger.info(
            f"Resolved {len(references)} block references"
            + (f", dropped {len(self.dropped)} branches" if self.dropped else "")
        )
        return references

    def _claim(self, frontier: List[_Occurrence]) -> List[_Occurrence]:
        """Decide the fate of each occurrence and return those that need a fetch."""
        claimed = []
        for occurrence in frontier:
            block_id = occurrence.block_id

            if block_id in occurrence.path:
                self._drop(CycleDetected(block_id, occurrence.path))
                continue

            state = self.arena.state_of(block_id)
            if state in (ResolutionState.RESOLVED, ResolutionState.RESOLVING):
                self.arena.add_occurrence(block_id, occurrence.display_text)
                continue

            if occurrence.depth >= self.max_depth:
                self._drop(DepthExceeded(block_id, occurrence.depth, self.max_depth))
                continue

            self.arena.begin(block_id, occurrence.depth, occurrence.display_text)
            claimed.append(occurrence)
        return claimed

    def _fetch_level(self, executor: ThreadPoolExecutor, claimed: List[_Occurrence]) -> List[_Occurrence]:
        futures = [
            (occurrence, executor.submit(self.source.fetch_block_content, occurrence.block_id, self.fetch_timeout))
            for occurrence in claimed
        ]

        next_frontier: List[_Occurrence] = []
        for occurrence, future in futures:
            block_id = occurrence.block_id
            try:
                native = future.result()
                content = self.transformer(native)
            except Exception as e:
                logger.warning(f"Failed to resolve block {block_id}: {e}")
                self.arena.abandon(block_id)
                continue

            self.arena.complete(block_id, content)
            child_path = occurrence.path + (block_id,)
            next_frontier.extend(
                _Occurrence(token.block_id, token.display_text, occurrence.depth + 1, child_path)
                for token in find_block_references(native, unique=False)
            )
        return next_frontier

    def _drop(self, reason: PublisherError) -> None:
        logger.warning(f"Dropped reference branch: {reason}")
        self.dropped.append(reason)


def resolve_references(
    source: ContentSource,
    root_content: str,
    max_depth: int = ReferenceResolver.DEFAULT_MAX_DEPTH
) -> List[BlockReference]:
    """Resolve references of ``root_content`` with a one-off resolver."""
    return ReferenceResolver(source, max_depth=max_depth).resolve_all(root_content)


__all__ = ['ReferenceResolver', 'resolve_references']
