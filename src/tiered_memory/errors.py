"""
Error types raised by the memory tiers and the orchestrator.

Every error derives from :class:`MemoryCoreError` so callers can catch the
whole family at once.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "MemoryCoreError",
    "EntryNotFoundError",
    "EmbedderUnavailableError",
    "EmbeddingTransportError",
    "PersistenceError",
    "IndexWriteError",
]


class MemoryCoreError(Exception):
    """Base class for all tiered-memory errors."""


class EntryNotFoundError(MemoryCoreError, KeyError):
    """Lookup of an identifier that no tier currently holds."""

    def __init__(self, entry_id: str, where: str = "memory") -> None:
        self.id = entry_id
        self.where = where
        super().__init__(f"entry not found in {where}: {entry_id}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class EmbedderUnavailableError(MemoryCoreError):
    """An embedding-dependent operation was called with no embedder configured."""

    def __init__(self, operation: str = "operation") -> None:
        self.operation = operation
        super().__init__(f"no embedder configured for {operation}")


class EmbeddingTransportError(MemoryCoreError):
    """The embedding service could not be reached or returned garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(MemoryCoreError):
    """Reading or writing a long-term memory snapshot failed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(f"{message}: {path}" if path else message)


class IndexWriteError(MemoryCoreError):
    """The vector index rejected a record, e.g. a vector of the wrong dimension."""

    def __init__(self, message: str, entry_id: Optional[str] = None) -> None:
        self.id = entry_id
        super().__init__(message)
