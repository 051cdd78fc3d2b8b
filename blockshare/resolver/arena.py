"""Per-block resolution state, keyed by block id."""

from dataclasses import dataclass
from typing import Dict, List, Optional

from blockshare.models import BlockReference, ResolutionState


@dataclass
class ArenaEntry:
    state: ResolutionState
    depth: int
    display_text: Optional[str] = None
    content: str = ''
    ref_count: int = 0
    order: int = -1


class ResolutionArena:
    """
    State machine for every block id seen during one resolution.

    Ids move ``UNVISITED -> RESOLVING -> RESOLVED``. An abandoned id (failed
    fetch) goes back to ``UNVISITED``. Occurrences that arrive while an id is
    ``RESOLVING`` or ``RESOLVED`` only raise its reference count.
    """

    def __init__(self):
        self._entries: Dict[str, ArenaEntry] = {}
        self._completed = 0

    def state_of(self, block_id: str) -> ResolutionState:
        entry = self._entries.get(block_id)
        return entry.state if entry else ResolutionState.UNVISITED

    def get(self, block_id: str) -> Optional[ArenaEntry]:
        return self._entries.get(block_id)

    def begin(self, block_id: str, depth: int, display_text: Optional[str] = None) -> None:
        if self.state_of(block_id) != ResolutionState.UNVISITED:
            raise ValueError(f"Block {block_id} is already {self.state_of(block_id).value}")
        self._entries[block_id] = ArenaEntry(
            state=ResolutionState.RESOLVING,
            depth=depth,
            display_text=display_text,
            ref_count=1,
        )

    def add_occurrence(self, block_id: str, display_text: Optional[str] = None) -> None:
        """Count one more reference to a resolving or resolved block."""
        entry = self._entries.get(block_id)
        if entry is None:
            raise KeyError(block_id)
        entry.ref_count += 1
        if display_text and not entry.display_text:
            entry.display_text = display_text

    def complete(self, block_id: str, content: str) -> None:
        entry = self._entries[block_id]
        if entry.state != ResolutionState.RESOLVING:
            raise ValueError(f"Block {block_id} is not resolving")
        entry.state = ResolutionState.RESOLVED
        entry.content = content
        entry.order = self._completed
        self._completed += 1

    def abandon(self, block_id: str) -> None:
        self._entries.pop(block_id, None)

    def resolved(self) -> List[BlockReference]:
        """Resolved references by descending count, ties in completion order."""
        done = [
            (block_id, entry) for block_id, entry in self._entries.items()
            if entry.state == ResolutionState.RESOLVED
        ]
        done.sort(key=lambda item: (-item[1].ref_count, item[1].order))
        return [
            BlockReference(
                block_id=block_id,
                content=entry.content,
                display_text=entry.display_text,
                ref_count=entry.ref_count,
            )
            for block_id, entry in done
        ]

    def clear(self) -> None:
        self._entries.clear()
        self._completed = 0

    def __len__(self) -> int:
        return len(self._entries)
