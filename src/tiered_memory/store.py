"""
MemoryStore — single owner of the three memory tiers.

    store = MemoryStore(MemoryConfig(), embedder=OllamaEmbedder())
    store.add_short_term("user: what's on my calendar?", {"session": "s1"})
    store.add_working("draft reply to Sam", priority=5)
    context = store.get_context("calendar", max_tokens=500)

Ties the tiers together with two policies: consolidation (aged short-term
entries move into long-term memory) and context assembly (working, then
similar long-term, then recent entries, under a fragment budget).
"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from loguru import logger

from tiered_memory.buffer import ConversationBuffer
from tiered_memory.config import MemoryConfig
from tiered_memory.embedding import Embedder, create_embedder
from tiered_memory.errors import EmbedderUnavailableError, EntryNotFoundError, MemoryCoreError
from tiered_memory.models import (
    Embedding,
    MemoryEntry,
    MemorySearchResult,
    MemoryStats,
    MemoryTier,
    utcnow,
)
from tiered_memory.vector_memory import VectorMemory
from tiered_memory.working import WorkingMemory

__all__ = ["MemoryStore"]

VectorLike = Union[Embedding, Sequence[float]]


def _as_vector(embedding: Optional[VectorLike]) -> Optional[List[float]]:
    if embedding is None:
        return None
    if isinstance(embedding, Embedding):
        return list(embedding.values)
    return [float(x) for x in embedding]


class MemoryStore:
    """Three-tier memory orchestrator.

    Args:
        config: Tier sizes and policy knobs.
        embedder: Optional embedder for query embedding and consolidation.
        long_term: Long-term tier to use; defaults to an in-memory
            :class:`VectorMemory`. Anything with the same interface works
            (e.g. :class:`~tiered_memory.chroma_store.ChromaVectorMemory`).
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        embedder: Optional[Embedder] = None,
        long_term: Optional[Any] = None,
    ) -> None:
        self.config = config or MemoryConfig()
        self.embedder = embedder

        self.short_term = ConversationBuffer(self.config.short_term_max)
        self.working_set = WorkingMemory(
            self.config.working_max,
            enforce_limit=self.config.enforce_working_limit,
        )
        self.long_term = long_term if long_term is not None else VectorMemory(embedder)

        self._lock = threading.Lock()
        self._last_stamp = 0

    @classmethod
    def from_config(cls, config: Optional[MemoryConfig] = None, db_path: Optional[str] = None) -> "MemoryStore":
        """Wire a store from *config*, picking the embedder it names.

        With *db_path* the long-term tier is a persistent Chroma collection.
        """
        config = config or MemoryConfig()
        embedder = create_embedder(config.embedding)
        long_term = None
        if db_path is not None:
            from tiered_memory.chroma_store import ChromaVectorMemory
            long_term = ChromaVectorMemory(db_path, embedder=embedder)
        return cls(config, embedder=embedder, long_term=long_term)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_id(self, prefix: str) -> str:
        """Time-derived id; strictly increasing so ids are never reused. Caller holds the lock."""
        stamp = time.time_ns()
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return f"{prefix}_{stamp}"

    def _query_vector(self, query: str, embedding: Optional[VectorLike]) -> Optional[List[float]]:
        """Resolve the query vector outside the lock; ``None`` if no embedder."""
        vector = _as_vector(embedding)
        if vector is not None:
            return vector
        if self.embedder is None:
            return None
        return self.embedder.embed(query)

    # ------------------------------------------------------------------
    # Adding
    # ------------------------------------------------------------------

    def add_short_term(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> MemoryEntry:
        """Record a conversational turn in the recency buffer."""
        with self._lock:
            entry = MemoryEntry(
                id=self._new_id("st"),
                tier=MemoryTier.SHORT,
                content=content,
                timestamp=utcnow(),
                metadata=dict(metadata or {}),
            )
            self.short_term.add(entry)
        return entry

    def add_working(
        self,
        content: str,
        priority: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MemoryEntry:
        """Add an active task; higher *priority* surfaces first."""
        meta = dict(metadata or {})
        meta["priority"] = priority
        with self._lock:
            entry = MemoryEntry(
                id=self._new_id("wm"),
                tier=MemoryTier.WORKING,
                content=content,
                timestamp=utcnow(),
                metadata=meta,
            )
            self.working_set.add(entry)
        return entry

    def add_long_term(
        self,
        content: str,
        embedding: Optional[VectorLike] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MemoryEntry:
        """Store *content* in long-term memory with a precomputed embedding.

        Without an embedding the entry is kept for lookup by id only.
        """
        vector = _as_vector(embedding)
        with self._lock:
            entry = MemoryEntry(
                id=self._new_id("lt"),
                tier=MemoryTier.LONG,
                content=content,
                timestamp=utcnow(),
                metadata=dict(metadata or {}),
                embedding=vector,
            )
            self.long_term.add_entry(entry, vector)
        return entry

    def remember(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> MemoryEntry:
        """Embed *content* with the store's embedder (if any) and keep it long-term."""
        vector = self.embedder.embed(content) if self.embedder is not None else None
        return self.add_long_term(content, vector, metadata)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        embedding: Optional[VectorLike] = None,
        limit: int = 5,
    ) -> List[MemorySearchResult]:
        """Similarity search over long-term memory.

        Raises:
            EmbedderUnavailableError: no *embedding* given and no embedder configured.
        """
        vector = self._query_vector(query, embedding)
        if vector is None:
            raise EmbedderUnavailableError("search")

        with self._lock:
            results = self.long_term.search(vector, limit)

        return [
            MemorySearchResult(entry=r.metadata.to_entry(), score=r.score)
            for r in results
        ]

    def get_context(
        self,
        query: str,
        embedding: Optional[VectorLike] = None,
        max_tokens: int = 500,
    ) -> str:
        """Assemble the context string for one agent turn.

        Working entries fill up to a third of the budget, similar long-term
        memories up to two thirds, then the most recent short-term entries
        are always appended. The budget counts fragments, not tokens.
        """
        try:
            vector = self._query_vector(query, embedding)
        except Exception as e:
            logger.warning("Query embedding failed; assembling context without long-term memory: {}", e)
            vector = None

        with self._lock:
            return "\n".join(self._assemble_context(vector, max_tokens))

    def _assemble_context(self, vector: Optional[List[float]], max_tokens: int) -> List[str]:
        parts: List[str] = []

        for entry in self.working_set.get_all():
            if len(parts) >= max_tokens // 3:
                break
            parts.append(f"[WORKING]: {entry.content}")

        if vector is not None and self.config.context_candidates > 0:
            for r in self.long_term.search(vector, self.config.context_candidates):
                if len(parts) >= max_tokens * 2 // 3:
                    break
                if r.score >= self.config.similarity_cut:
                    parts.append(f"[MEMORY ({r.score:.2f})]: {r.content}")

        for entry in self.short_term.get_recent(self.config.context_recent):
            parts.append(f"[RECENT]: {entry.content}")

        return parts

    def get(self, entry_id: str) -> MemoryEntry:
        """Find *entry_id* in whichever tier holds it."""
        with self._lock:
            entry = self.short_term.get(entry_id) or self.working_set.get(entry_id)
            if entry is not None:
                return entry
            try:
                return self.long_term.get_entry(entry_id)
            except EntryNotFoundError:
                raise EntryNotFoundError(entry_id) from None

    def recent(self, count: int = 10) -> List[MemoryEntry]:
        return self.short_term.get_recent(count)

    def working(self) -> List[MemoryEntry]:
        return self.working_set.get_all()

    # ------------------------------------------------------------------
    # Consolidation
    # ------------------------------------------------------------------

    def consolidate(
        self,
        embedder: Optional[Embedder] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Move short-term entries older than ``config.consolidation_age`` to long-term.

        Embeddings are computed without holding the store lock. An entry
        whose embedding fails, or that the long-term tier rejects, is left in
        short-term memory and the pass continues.

        Returns dict with ``candidates_found``, ``promoted``, ``failed``,
        ``skipped`` and ``promoted_ids``.
        """
        embedder = embedder or self.embedder
        cutoff = (now or utcnow()) - self.config.consolidation_age

        with self._lock:
            candidates = self.short_term.older_than(cutoff)

        report: Dict[str, Any] = {
            "candidates_found": len(candidates),
            "promoted": 0,
            "failed": 0,
            "skipped": 0,
            "promoted_ids": [],
        }

        for entry in candidates:
            vector = entry.embedding
            if vector is None and embedder is not None:
                try:
                    vector = embedder.embed(entry.content)
                except Exception as e:
                    logger.warning("Embedding failed for {}; leaving it in short-term: {}", entry.id, e)
                    report["failed"] += 1
                    continue
            elif vector is None and not self.config.promote_without_embedding:
                report["skipped"] += 1
                continue

            with self._lock:
                # evicted or deleted while we were embedding
                if entry.id not in self.short_term:
                    report["skipped"] += 1
                    continue
                try:
                    self.long_term.add_entry(entry.with_tier(MemoryTier.LONG, vector), vector)
                except MemoryCoreError as e:
                    logger.warning("Long-term tier rejected {}; leaving it in short-term: {}", entry.id, e)
                    report["failed"] += 1
                    continue
                self.short_term.remove(entry.id)

            report["promoted"] += 1
            report["promoted_ids"].append(entry.id)

        if candidates:
            logger.info(
                "Consolidation: {} candidates, {} promoted, {} failed, {} skipped",
                report["candidates_found"], report["promoted"], report["failed"], report["skipped"],
            )
        return report

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def delete(self, entry_id: str) -> None:
        """Remove *entry_id* from whichever tier holds it."""
        with self._lock:
            if self.short_term.remove(entry_id) is not None:
                return
            if self.working_set.remove(entry_id) is not None:
                return
            try:
                self.long_term.delete(entry_id)
            except EntryNotFoundError:
                raise EntryNotFoundError(entry_id) from None

    def save(self, path: str) -> None:
        """Snapshot long-term memory to *path*."""
        with self._lock:
            self.long_term.save(path)

    def load(self, path: str) -> None:
        """Restore long-term memory from *path* (missing file = nothing to load)."""
        with self._lock:
            self.long_term.load(path)

    def clear(self) -> None:
        with self._lock:
            self.short_term.clear()
            self.long_term.clear()
            self.working_set.clear()

    def stats(self) -> MemoryStats:
        with self._lock:
            return MemoryStats(
                short_term_count=len(self.short_term),
                long_term_count=self.long_term.count(),
                working_count=len(self.working_set),
            )
