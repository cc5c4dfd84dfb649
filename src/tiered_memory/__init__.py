"""
tiered-memory: Three-tier conversational memory with semantic retrieval.

Tiers:
    Short-term  - Bounded recency buffer of conversation turns
    Working     - Priority-ordered active tasks
    Long-term   - Embedding-indexed vector memory (JSON snapshots or ChromaDB)

Usage:
    from tiered_memory import MemoryStore, MemoryConfig

    store = MemoryStore(MemoryConfig(short_term_max=50))
    store.add_short_term("user: remind me to call the dentist")
    context = store.get_context("dentist", embedding=query_vector)
"""

__version__ = "0.1.0"

from tiered_memory.buffer import ConversationBuffer
from tiered_memory.config import EmbeddingConfig, MemoryConfig
from tiered_memory.embedding import (
    Embedder,
    OllamaEmbedder,
    SentenceTransformerEmbedder,
    cosine_similarity,
    create_embedder,
)
from tiered_memory.errors import (
    EmbedderUnavailableError,
    EmbeddingTransportError,
    EntryNotFoundError,
    IndexWriteError,
    MemoryCoreError,
    PersistenceError,
)
from tiered_memory.models import (
    Embedding,
    MemoryEntry,
    MemorySearchResult,
    MemoryStats,
    MemoryTier,
    SearchResult,
    VectorEntry,
    VectorMetadata,
)
from tiered_memory.store import MemoryStore
from tiered_memory.vector_memory import VectorMemory
from tiered_memory.working import WorkingMemory

__all__ = [
    "MemoryStore",
    "MemoryConfig",
    "EmbeddingConfig",
    "ConversationBuffer",
    "WorkingMemory",
    "VectorMemory",
    "Embedder",
    "OllamaEmbedder",
    "SentenceTransformerEmbedder",
    "create_embedder",
    "cosine_similarity",
    "MemoryEntry",
    "MemoryTier",
    "Embedding",
    "VectorEntry",
    "VectorMetadata",
    "SearchResult",
    "MemorySearchResult",
    "MemoryStats",
    "MemoryCoreError",
    "EntryNotFoundError",
    "EmbedderUnavailableError",
    "EmbeddingTransportError",
    "PersistenceError",
    "IndexWriteError",
]
