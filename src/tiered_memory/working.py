"""
Working tier — the small set of active-task entries, ordered by priority.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from typing import List, Optional, Tuple

from loguru import logger

from tiered_memory.models import MemoryEntry

__all__ = ["WorkingMemory"]

_HeapItem = Tuple[int, int, MemoryEntry]


class WorkingMemory:
    """Priority-ordered active-task entries.

    Internally a binary max-heap (``heapq`` over negated priorities, with an
    insertion sequence so equal priorities stay FIFO). ``max_size`` is a
    target working-set size; it is only enforced when *enforce_limit* is set,
    in which case the lowest-priority entry is dropped on overflow.
    """

    DEFAULT_SIZE = 10

    def __init__(self, max_size: int = DEFAULT_SIZE, enforce_limit: bool = False) -> None:
        self.max_size = max_size if max_size > 0 else self.DEFAULT_SIZE
        self.enforce_limit = enforce_limit
        self._heap: List[_HeapItem] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def add(self, entry: MemoryEntry) -> None:
        with self._lock:
            heapq.heappush(self._heap, (-entry.priority, next(self._seq), entry))
            if self.enforce_limit and len(self._heap) > self.max_size:
                self._drop_lowest()

    def _drop_lowest(self) -> None:
        lowest = max(self._heap, key=lambda item: (item[0], -item[1]))
        self._heap.remove(lowest)
        heapq.heapify(self._heap)
        logger.debug("Working memory over target size; dropped {}", lowest[2].id)

    def get_all(self) -> List[MemoryEntry]:
        """All entries, highest priority first (ties in insertion order)."""
        with self._lock:
            return [entry for _, _, entry in sorted(self._heap, key=lambda item: item[:2])]

    def peek(self) -> Optional[MemoryEntry]:
        with self._lock:
            return self._heap[0][2] if self._heap else None

    def get(self, entry_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            for _, _, entry in self._heap:
                if entry.id == entry_id:
                    return entry
            return None

    def remove(self, entry_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            for i, (_, _, entry) in enumerate(self._heap):
                if entry.id == entry_id:
                    self._heap.pop(i)
                    heapq.heapify(self._heap)
                    return entry
            return None

    def clear(self) -> None:
        with self._lock:
            self._heap = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)

    def __contains__(self, entry_id: object) -> bool:
        return self.get(entry_id) is not None  # type: ignore[arg-type]
