"""
Long-term tier — exhaustive-scan vector memory with JSON snapshots.

Stores ``id -> VectorEntry`` (vector + metadata) and ranks by cosine
similarity. Good for hundreds to low thousands of entries; see
``chroma_store`` for a persistent ANN-backed alternative.
"""

from __future__ import annotations

import itertools
import json
import os
import tempfile
import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from loguru import logger

from tiered_memory.embedding import Embedder, cosine_similarity
from tiered_memory.errors import (
    EmbedderUnavailableError,
    EmbeddingTransportError,
    EntryNotFoundError,
    PersistenceError,
)
from tiered_memory.models import MemoryEntry, SearchResult, VectorEntry, VectorMetadata

__all__ = ["VectorMemory"]

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_LIST_LIMIT = 100


class VectorMemory:
    """In-memory associative store of text + vector records.

    Args:
        embedder: Optional embedder used by :meth:`add_text` and
            :meth:`search_text`. Plain :meth:`add` / :meth:`search` take
            precomputed vectors and never need one.
    """

    def __init__(self, embedder: Optional[Embedder] = None) -> None:
        self.embedder = embedder
        self._entries: Dict[str, VectorEntry] = {}
        self._seq = itertools.count()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def add(
        self,
        vector: Optional[Sequence[float]],
        metadata: Optional[VectorMetadata] = None,
        *,
        content: Optional[str] = None,
    ) -> str:
        """Insert a record unconditionally and return its id.

        A fresh id is generated when *metadata* has none. Existing ids are
        overwritten, not duplicated.
        """
        metadata = replace(metadata) if metadata is not None else VectorMetadata()
        if content is not None:
            metadata.content = content
        if not metadata.timestamp:
            metadata.timestamp = int(time.time())

        with self._lock:
            if not metadata.id:
                metadata.id = f"vec_{next(self._seq)}_{time.time_ns()}"
            self._entries[metadata.id] = VectorEntry(
                vector=list(vector) if vector is not None else None,
                metadata=metadata,
            )
        logger.debug("Long-term memory stored {}", metadata.id)
        return metadata.id

    def add_entry(self, entry: MemoryEntry, vector: Optional[Sequence[float]] = None) -> str:
        """Insert a ``MemoryEntry``; falls back to ``entry.embedding`` for the vector."""
        if vector is None:
            vector = entry.embedding
        return self.add(vector, VectorMetadata.from_entry(entry))

    def add_text(
        self,
        content: str,
        tags: Optional[List[str]] = None,
        custom: Optional[Dict[str, str]] = None,
    ) -> str:
        """Embed *content* with the configured embedder and store it."""
        vector = self._embed(content, "add_text")
        return self.add(vector, VectorMetadata(content=content, tags=list(tags or []), custom=dict(custom or {})))

    def _embed(self, text: str, operation: str) -> List[float]:
        if self.embedder is None:
            raise EmbedderUnavailableError(operation)
        try:
            return self.embedder.embed(text)
        except EmbeddingTransportError:
            raise
        except Exception as e:
            raise EmbeddingTransportError(f"failed to generate embedding: {e}") from e

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: Sequence[float], limit: int = DEFAULT_SEARCH_LIMIT) -> List[SearchResult]:
        """Top *limit* records by cosine similarity to *query*, best first.

        Records stored without a vector are not candidates.
        """
        if limit <= 0:
            limit = DEFAULT_SEARCH_LIMIT
        if len(query) == 0:
            return []

        with self._lock:
            candidates = [e for e in self._entries.values() if e.vector is not None]

        scored = [(cosine_similarity(query, e.vector), e) for e in candidates]
        # stable sort keeps insertion order among equal scores
        scored.sort(key=lambda pair: pair[0], reverse=True)

        return [
            SearchResult(id=e.id, score=score, content=e.content, metadata=e.metadata)
            for score, e in scored[:limit]
        ]

    def search_text(self, text: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[SearchResult]:
        """Embed *text* and search with it."""
        return self.search(self._embed(text, "search_text"), limit)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> VectorEntry:
        with self._lock:
            try:
                return self._entries[entry_id]
            except KeyError:
                raise EntryNotFoundError(entry_id, "long-term memory") from None

    def get_entry(self, entry_id: str) -> MemoryEntry:
        record = self.get(entry_id)
        return record.metadata.to_entry(record.vector)

    def delete(self, entry_id: str) -> None:
        """Remove the record and its vector together."""
        with self._lock:
            if self._entries.pop(entry_id, None) is None:
                raise EntryNotFoundError(entry_id, "long-term memory")
        logger.debug("Long-term memory deleted {}", entry_id)

    def list(self, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> List[VectorEntry]:
        """Records in insertion order, paginated."""
        if limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        offset = max(offset, 0)
        with self._lock:
            return list(self._entries.values())[offset:offset + limit]

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, entry_id: object) -> bool:
        with self._lock:
            return entry_id in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str) -> None:
        """Write every record to *path* as JSON, creating parent directories."""
        path = os.path.abspath(path)
        with self._lock:
            data = {entry_id: entry.to_dict() for entry_id, entry in self._entries.items()}

        directory = os.path.dirname(path)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".vectors-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                # mkstemp creates 0600
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"failed to save long-term memory ({e})", path) from e

        logger.info("Saved {} long-term entries to {}", len(data), path)

    def load(self, path: str) -> None:
        """Replace the store's contents with the snapshot at *path*.

        A missing file means there is nothing to load and is not an error.
        """
        path = os.path.abspath(path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except FileNotFoundError:
            logger.debug("No long-term snapshot at {}; starting empty", path)
            return
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise PersistenceError(f"malformed snapshot ({e})", path) from e
        except OSError as e:
            raise PersistenceError(f"failed to read snapshot ({e})", path) from e

        if not isinstance(raw, dict):
            raise PersistenceError("snapshot root must be an object", path)

        entries: Dict[str, VectorEntry] = {}
        try:
            for entry_id, item in raw.items():
                entry = VectorEntry.from_dict(item)
                if not entry.metadata.id:
                    entry.metadata.id = entry_id
                entries[entry_id] = entry
        except (TypeError, ValueError, AttributeError) as e:
            raise PersistenceError(f"malformed snapshot record ({e})", path) from e

        with self._lock:
            self._entries = entries
        logger.info("Loaded {} long-term entries from {}", len(entries), path)
