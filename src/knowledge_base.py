from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple


@dataclass(frozen=True)
class CommunityEntry:
    """The most recent human-authored value of one leaf key, with provenance."""
    value: Any
    author: str
    commit_id: str
    message: str

    @property
    def short_commit_id(self) -> str:
        return self.commit_id[:7]


class CommunityKnowledgeBase:
    """
    Accumulating map of leaf key -> CommunityEntry.

    Entries are recorded in fold order; recording a key again replaces the
    earlier entry, so the last human change wins.
    """

    def __init__(self):
        self._entries: Dict[str, CommunityEntry] = {}

    def record(self, key: str, entry: CommunityEntry) -> None:
        self._entries[key] = entry

    def get(self, key: str) -> Optional[CommunityEntry]:
        return self._entries.get(key)

    def items(self) -> Iterator[Tuple[str, CommunityEntry]]:
        return iter(self._entries.items())

    def keys(self):
        return self._entries.keys()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CommunityKnowledgeBase):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"CommunityKnowledgeBase({len(self._entries)} keys)"
