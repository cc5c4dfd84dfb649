"""
Persistent long-term tier backed by ChromaDB.

Drop-in alternative to :class:`~tiered_memory.vector_memory.VectorMemory`
for corpora too large for an exhaustive scan. Chroma's HNSW index is
approximate, so result order can differ slightly from the exact scan.
"""

from __future__ import annotations

import itertools
import json
import os
import threading
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from tiered_memory.embedding import Embedder
from tiered_memory.errors import (
    EmbedderUnavailableError,
    EmbeddingTransportError,
    EntryNotFoundError,
    IndexWriteError,
)
from tiered_memory.models import MemoryEntry, SearchResult, VectorEntry, VectorMetadata

__all__ = ["ChromaVectorMemory"]


class ChromaVectorMemory:
    """ChromaDB-backed vector memory.

    Records stored without a vector cannot go into the index; they are kept
    in a side table so they still count and can be fetched by id, but they
    are never search candidates and do not survive a restart.
    """

    COLLECTION_NAME = "long_term_memory"

    def __init__(
        self,
        db_path: str,
        embedder: Optional[Embedder] = None,
        collection_name: Optional[str] = None,
    ) -> None:
        self.db_path = os.path.abspath(db_path)
        self.embedder = embedder
        self.collection_name = collection_name or self.COLLECTION_NAME
        self._lock = threading.Lock()
        self._client = None
        self._collection = None
        self._unindexed: Dict[str, VectorEntry] = {}
        self._seq = itertools.count()

    # ------------------------------------------------------------------
    # Lazy client / collection
    # ------------------------------------------------------------------

    def _ensure_client(self):
        if self._client is None:
            import chromadb
            os.makedirs(self.db_path, exist_ok=True)
            self._client = chromadb.PersistentClient(path=self.db_path)
            self._collection = self._open_collection()

    def _open_collection(self):
        return self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    @property
    def collection(self):
        self._ensure_client()
        return self._collection

    # ------------------------------------------------------------------
    # Record conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_chroma_meta(meta: VectorMetadata) -> Dict[str, Any]:
        # Chroma metadata values must be scalars
        return {
            "timestamp": meta.timestamp,
            "tags": json.dumps(meta.tags),
            "custom": json.dumps(meta.custom),
        }

    @staticmethod
    def _from_chroma(entry_id: str, document: Optional[str], meta: Optional[Dict[str, Any]]) -> VectorMetadata:
        meta = meta or {}
        return VectorMetadata(
            id=entry_id,
            content=document or "",
            timestamp=int(meta.get("timestamp", 0)),
            tags=json.loads(meta.get("tags") or "[]"),
            custom=json.loads(meta.get("custom") or "{}"),
        )

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
        """Insert a record and return its id.

        Raises:
            IndexWriteError: Chroma rejected the vector, e.g. its dimension
                differs from the collection's.
        """
        from chromadb.errors import ChromaError

        metadata = replace(metadata) if metadata is not None else VectorMetadata()
        if content is not None:
            metadata.content = content
        if not metadata.timestamp:
            metadata.timestamp = int(time.time())

        with self._lock:
            if not metadata.id:
                metadata.id = f"vec_{next(self._seq)}_{time.time_ns()}"
            if vector is None:
                self._unindexed[metadata.id] = VectorEntry(vector=None, metadata=metadata)
            else:
                try:
                    self.collection.upsert(
                        ids=[metadata.id],
                        documents=[metadata.content],
                        embeddings=[[float(x) for x in vector]],
                        metadatas=[self._to_chroma_meta(metadata)],
                    )
                except (ChromaError, ValueError) as e:
                    raise IndexWriteError(f"index rejected {metadata.id}: {e}", metadata.id) from e
                self._unindexed.pop(metadata.id, None)
        return metadata.id

    def add_entry(self, entry: MemoryEntry, vector: Optional[Sequence[float]] = None) -> str:
        if vector is None:
            vector = entry.embedding
        return self.add(vector, VectorMetadata.from_entry(entry))

    def add_text(
        self,
        content: str,
        tags: Optional[List[str]] = None,
        custom: Optional[Dict[str, str]] = None,
    ) -> str:
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

    def search(self, query: Sequence[float], limit: int = 10) -> List[SearchResult]:
        """Nearest records to *query*; score is ``1 - cosine distance``."""
        if limit <= 0:
            limit = 10
        if len(query) == 0:
            return []

        count = self.collection.count()
        if count == 0:
            return []

        results = self.collection.query(
            query_embeddings=[[float(x) for x in query]],
            n_results=min(limit, count),
            include=["documents", "metadatas", "distances"],
        )

        out: List[SearchResult] = []
        if results and results.get("ids"):
            ids = results["ids"][0]
            docs = results["documents"][0] if results.get("documents") else [None] * len(ids)
            metas = results["metadatas"][0] if results.get("metadatas") else [None] * len(ids)
            dists = results["distances"][0] if results.get("distances") else [1.0] * len(ids)
            for entry_id, doc, meta, dist in zip(ids, docs, metas, dists):
                score = max(-1.0, min(1.0, 1.0 - float(dist)))
                metadata = self._from_chroma(entry_id, doc, meta)
                out.append(SearchResult(id=entry_id, score=score, content=metadata.content, metadata=metadata))

        out.sort(key=lambda r: r.score, reverse=True)
        return out

    def search_text(self, text: str, limit: int = 10) -> List[SearchResult]:
        return self.search(self._embed(text, "search_text"), limit)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> VectorEntry:
        if entry_id in self._unindexed:
            return self._unindexed[entry_id]

        res = self.collection.get(ids=[entry_id], include=["documents", "metadatas", "embeddings"])
        if not res or not res.get("ids"):
            raise EntryNotFoundError(entry_id, "long-term memory")

        docs = res.get("documents")
        metas = res.get("metadatas")
        embeddings = res.get("embeddings")
        vector = [float(x) for x in embeddings[0]] if embeddings is not None and len(embeddings) else None
        return VectorEntry(
            vector=vector,
            metadata=self._from_chroma(entry_id, docs[0] if docs else None, metas[0] if metas else None),
        )

    def get_entry(self, entry_id: str) -> MemoryEntry:
        record = self.get(entry_id)
        return record.metadata.to_entry(record.vector)

    def delete(self, entry_id: str) -> None:
        with self._lock:
            if self._unindexed.pop(entry_id, None) is not None:
                return
            res = self.collection.get(ids=[entry_id], include=[])
            if not res or not res.get("ids"):
                raise EntryNotFoundError(entry_id, "long-term memory")
            self.collection.delete(ids=[entry_id])

    def list(self, limit: int = 100, offset: int = 0) -> List[VectorEntry]:
        if limit <= 0:
            limit = 100
        offset = max(offset, 0)

        res = self.collection.get(limit=limit, offset=offset, include=["documents", "metadatas", "embeddings"])
        entries: List[VectorEntry] = []
        ids = (res or {}).get("ids") or []
        docs = res.get("documents") or [None] * len(ids)
        metas = res.get("metadatas") or [None] * len(ids)
        embeddings = res.get("embeddings")
        for i, entry_id in enumerate(ids):
            vector = [float(x) for x in embeddings[i]] if embeddings is not None and len(embeddings) > i else None
            entries.append(VectorEntry(vector=vector, metadata=self._from_chroma(entry_id, docs[i], metas[i])))

        # side-table records page after the indexed ones
        if len(entries) < limit:
            skip = max(0, offset - self.collection.count())
            extra = list(self._unindexed.values())[skip:skip + limit - len(entries)]
            entries.extend(extra)
        return entries

    def ids(self) -> List[str]:
        res = self.collection.get(include=[])
        return list((res or {}).get("ids") or []) + list(self._unindexed)

    def count(self) -> int:
        return self.collection.count() + len(self._unindexed)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, entry_id: object) -> bool:
        try:
            self.get(entry_id)  # type: ignore[arg-type]
        except EntryNotFoundError:
            return False
        return True

    def clear(self) -> None:
        """Delete and recreate the collection."""
        with self._lock:
            self._ensure_client()
            self._client.delete_collection(self.collection_name)
            self._collection = self._open_collection()
            self._unindexed.clear()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Optional[str] = None) -> None:
        """No-op: Chroma persists every write to ``db_path`` itself."""
        if self._unindexed:
            logger.debug("{} vectorless entries are not persisted by Chroma", len(self._unindexed))

    def load(self, path: Optional[str] = None) -> None:
        """No-op: the collection is reopened from ``db_path`` on first use."""
        self._ensure_client()
