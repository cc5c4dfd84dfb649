"""
Short-term tier — bounded recency window over conversation entries.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime
from typing import Iterator, List, Optional

from loguru import logger

from tiered_memory.models import MemoryEntry

__all__ = ["ConversationBuffer"]


class ConversationBuffer:
    """Keeps the most recent *max_size* entries.

    Backed by an ``OrderedDict`` (hash index over a doubly linked list), so
    evicting the oldest entry and removing by id are both O(1).
    """

    DEFAULT_SIZE = 50

    def __init__(self, max_size: int = DEFAULT_SIZE) -> None:
        self.max_size = max_size if max_size > 0 else self.DEFAULT_SIZE
        self._entries: "OrderedDict[str, MemoryEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, entry: MemoryEntry) -> None:
        with self._lock:
            # re-adding an id moves it to the tail instead of duplicating it
            self._entries.pop(entry.id, None)
            self._entries[entry.id] = entry
            while len(self._entries) > self.max_size:
                evicted_id, _ = self._entries.popitem(last=False)
                logger.debug("Short-term buffer full; evicted {}", evicted_id)

    def get_recent(self, count: int) -> List[MemoryEntry]:
        """Up to *count* entries, newest first."""
        if count <= 0:
            return []
        with self._lock:
            results: List[MemoryEntry] = []
            for entry in reversed(self._entries.values()):
                if len(results) >= count:
                    break
                results.append(entry)
            return results

    def get(self, entry_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def older_than(self, cutoff: datetime) -> List[MemoryEntry]:
        """Entries created before *cutoff*, oldest first."""
        with self._lock:
            return [e for e in self._entries.values() if e.timestamp < cutoff]

    def remove(self, entry_id: str) -> Optional[MemoryEntry]:
        """Remove *entry_id* if present; returns the removed entry."""
        with self._lock:
            return self._entries.pop(entry_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        with self._lock:
            return entry_id in self._entries

    def __iter__(self) -> Iterator[MemoryEntry]:
        """Oldest first; iterates over a snapshot."""
        with self._lock:
            snapshot = list(self._entries.values())
        return iter(snapshot)
