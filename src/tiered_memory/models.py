"""
Data model shared by the three memory tiers.

``MemoryEntry`` is what the orchestrator hands around; ``VectorEntry`` is the
record the long-term tier stores and persists.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    "MemoryTier",
    "MemoryEntry",
    "Embedding",
    "VectorMetadata",
    "VectorEntry",
    "SearchResult",
    "MemorySearchResult",
    "MemoryStats",
    "utcnow",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryTier(str, Enum):
    """Which container an entry lives in."""

    SHORT = "short"
    LONG = "long"
    WORKING = "working"


@dataclass(frozen=True)
class MemoryEntry:
    """A single remembered item.

    Entries are immutable; moving one between tiers produces a copy with a
    new ``tier`` (see :meth:`with_tier`) and removes the original.
    """

    id: str
    tier: MemoryTier
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None

    @property
    def priority(self) -> int:
        value = self.metadata.get("priority", 0)
        # bool is an int subclass but never a meaningful priority
        if isinstance(value, bool) or not isinstance(value, int):
            return 0
        return value

    def with_tier(self, tier: MemoryTier, embedding: Optional[List[float]] = None) -> "MemoryEntry":
        return replace(self, tier=tier, embedding=embedding if embedding is not None else self.embedding)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.tier.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        if self.embedding is not None:
            data["embedding"] = list(self.embedding)
        return data


@dataclass(frozen=True)
class Embedding:
    """A vector plus the name of the model that produced it."""

    values: List[float]
    model: str = ""

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class VectorMetadata:
    """Metadata persisted alongside each long-term vector."""

    id: str = ""
    content: str = ""
    timestamp: int = 0
    tags: List[str] = field(default_factory=list)
    custom: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_entry(cls, entry: MemoryEntry) -> "VectorMetadata":
        tags: List[str] = []
        custom: Dict[str, str] = {}
        for key, value in entry.metadata.items():
            if key == "tags" and isinstance(value, (list, tuple, set)):
                tags = [str(t) for t in value]
            else:
                custom[key] = str(value)
        return cls(
            id=entry.id,
            content=entry.content,
            timestamp=int(entry.timestamp.timestamp()),
            tags=tags,
            custom=custom,
        )

    def to_entry(self, vector: Optional[List[float]] = None) -> MemoryEntry:
        metadata: Dict[str, Any] = dict(self.custom)
        if self.tags:
            metadata["tags"] = list(self.tags)
        return MemoryEntry(
            id=self.id,
            tier=MemoryTier.LONG,
            content=self.content,
            timestamp=datetime.fromtimestamp(self.timestamp, tz=timezone.utc),
            metadata=metadata,
            embedding=list(vector) if vector is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "timestamp": self.timestamp,
            "tags": list(self.tags),
            "custom": dict(self.custom),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VectorMetadata":
        if not isinstance(data, dict):
            raise TypeError(f"metadata must be an object, got {type(data).__name__}")
        return cls(
            id=str(data.get("id", "")),
            content=str(data.get("content", "")),
            timestamp=int(data.get("timestamp", 0)),
            tags=[str(t) for t in data.get("tags") or []],
            custom={str(k): str(v) for k, v in (data.get("custom") or {}).items()},
        )


@dataclass
class VectorEntry:
    """One long-term record: vector and metadata travel together."""

    vector: Optional[List[float]]
    metadata: VectorMetadata

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def content(self) -> str:
        return self.metadata.content

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vector": list(self.vector) if self.vector is not None else None,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VectorEntry":
        if not isinstance(data, dict):
            raise TypeError(f"entry must be an object, got {type(data).__name__}")
        raw = data.get("vector")
        vector = [float(x) for x in raw] if raw is not None else None
        return cls(vector=vector, metadata=VectorMetadata.from_dict(data.get("metadata", {})))


@dataclass(frozen=True)
class SearchResult:
    """A scored, read-only view of a stored vector entry."""

    id: str
    score: float
    content: str
    metadata: VectorMetadata


@dataclass(frozen=True)
class MemorySearchResult:
    entry: MemoryEntry
    score: float
    reasons: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MemoryStats:
    short_term_count: int = 0
    long_term_count: int = 0
    working_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "shortTermCount": self.short_term_count,
            "longTermCount": self.long_term_count,
            "workingCount": self.working_count,
        }
