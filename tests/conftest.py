"""
Shared pytest fixtures for tiered-memory tests.

Provides a deterministic keyword embedder, failing embedders, and a mocked
ChromaDB client. No test needs network access or a model download.
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock, patch

from tiered_memory.config import MemoryConfig
from tiered_memory.embedding import Embedder
from tiered_memory.errors import EmbeddingTransportError
from tiered_memory.models import MemoryEntry, MemoryTier, utcnow


# ----------------------------------------------------------------
# Embedders
# ----------------------------------------------------------------

class KeywordEmbedder(Embedder):
    """Bag-of-keywords embedder: one dimension per vocabulary word."""

    VOCAB = ["calendar", "dentist", "coffee", "python", "travel"]

    def __init__(self):
        self.calls = []

    @property
    def model_name(self):
        return "keyword-test"

    def embed(self, text):
        self.calls.append(text)
        words = text.lower().split()
        return [float(sum(1 for w in words if w.strip(".,!?") == v)) for v in self.VOCAB]


class FailingEmbedder(Embedder):
    """Raises a transport error for texts containing *trigger* (all texts if None)."""

    def __init__(self, trigger=None):
        self.trigger = trigger
        self.inner = KeywordEmbedder()

    @property
    def model_name(self):
        return "failing-test"

    def embed(self, text):
        if self.trigger is None or self.trigger in text:
            raise EmbeddingTransportError("connection refused")
        return self.inner.embed(text)


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def failing_embedder():
    return FailingEmbedder()


# ----------------------------------------------------------------
# Entries and stores
# ----------------------------------------------------------------

@pytest.fixture
def make_entry():
    """Factory for MemoryEntry objects with optional age."""
    counter = {"n": 0}

    def _make(content, tier=MemoryTier.SHORT, age=timedelta(0), metadata=None, embedding=None):
        counter["n"] += 1
        return MemoryEntry(
            id=f"test_{counter['n']}",
            tier=tier,
            content=content,
            timestamp=utcnow() - age,
            metadata=metadata or {},
            embedding=embedding,
        )

    return _make


@pytest.fixture
def config():
    return MemoryConfig(short_term_max=5, working_max=3, similarity_cut=0.7)


@pytest.fixture
def store(config):
    """MemoryStore without an embedder."""
    from tiered_memory.store import MemoryStore
    return MemoryStore(config)


@pytest.fixture
def store_with_embedder(config, embedder):
    from tiered_memory.store import MemoryStore
    return MemoryStore(config, embedder=embedder)


@pytest.fixture
def later():
    """A 'now' two hours in the future, so every entry counts as aged."""
    return utcnow() + timedelta(hours=2)


# ----------------------------------------------------------------
# ChromaDB (mocked)
# ----------------------------------------------------------------

@pytest.fixture
def mock_chromadb():
    """Mock chromadb client so tests never touch a real database."""
    mock_client = MagicMock()
    mock_collection = MagicMock()
    mock_collection.count.return_value = 0
    mock_collection.query.return_value = {
        "ids": [["lt_1", "lt_2"]],
        "documents": [["Dentist on Tuesday", "Coffee with Ana"]],
        "metadatas": [[
            {"timestamp": 1700000000, "tags": '["health"]', "custom": '{"session": "s1"}'},
            {"timestamp": 1700000100, "tags": "[]", "custom": "{}"},
        ]],
        "distances": [[0.1, 0.6]],
    }
    mock_client.get_or_create_collection.return_value = mock_collection

    with patch("chromadb.PersistentClient", return_value=mock_client):
        yield mock_client, mock_collection


@pytest.fixture
def chroma_memory(tmp_path, mock_chromadb):
    """ChromaVectorMemory with mocked ChromaDB."""
    from tiered_memory.chroma_store import ChromaVectorMemory
    return ChromaVectorMemory(str(tmp_path / "chroma"))
