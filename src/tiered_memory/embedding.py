"""
Embedding capability — text to vector, plus the vector math the tiers share.

Two backends:
    OllamaEmbedder               - local Ollama server over HTTP (httpx)
    SentenceTransformerEmbedder  - in-process sentence-transformers model

Both are optional; the memory store degrades to identifier-only long-term
storage when no embedder is configured.
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from tiered_memory.config import EmbeddingConfig
from tiered_memory.errors import EmbeddingTransportError
from tiered_memory.models import Embedding

__all__ = [
    "Embedder",
    "OllamaEmbedder",
    "SentenceTransformerEmbedder",
    "create_embedder",
    "probe_ollama",
    "cosine_similarity",
    "dot_product",
    "normalize",
]

DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "nomic-embed-text"
DEFAULT_ST_MODEL = "all-MiniLM-L6-v2"

# Ollama rejects prompts past its context window; ~4 chars per token
MAX_PROMPT_CHARS = 8192 * 4

# Lazy-loaded sentence-transformers models, keyed by model name
_models: Dict[str, Any] = {}
_model_lock = threading.Lock()


def _get_model(model_name: str = DEFAULT_ST_MODEL):
    """Lazy-load SentenceTransformer (heavy import), keyed by model name."""
    if model_name not in _models:
        with _model_lock:
            if model_name not in _models:
                from sentence_transformers import SentenceTransformer
                logger.info("Loading embedding model: {}", model_name)
                _models[model_name] = SentenceTransformer(model_name)
    return _models[model_name]


# ----------------------------------------------------------------------
# Vector math
# ----------------------------------------------------------------------

def dot_product(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 for vectors of different length, empty vectors, or when
    either vector has zero magnitude.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(dot_product(a, b)) / (norm_a * norm_b)
    # float rounding can push identical vectors a hair past 1
    return max(-1.0, min(1.0, score))


def normalize(v: Sequence[float]) -> List[float]:
    """Scale *v* to unit length (a zero vector is returned unchanged)."""
    norm = math.sqrt(sum(x * x for x in v))
    if norm == 0:
        return list(v)
    return [x / norm for x in v]


# ----------------------------------------------------------------------
# Embedders
# ----------------------------------------------------------------------

class Embedder(ABC):
    """Anything that turns text into a fixed-length vector."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed(t) for t in texts]

    def embedding(self, text: str) -> Embedding:
        """Embed *text* and tag the vector with this embedder's model name."""
        return Embedding(values=self.embed(text), model=self.model_name)


class OllamaEmbedder(Embedder):
    """Embeddings from a local Ollama server (``POST /api/embeddings``).

    Args:
        endpoint: Base URL of the Ollama server.
        model: Embedding model name.
        timeout: Seconds before a request is abandoned.
        client: Optional pre-built ``httpx.Client`` (tests inject a mock transport).
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
        model: str = DEFAULT_OLLAMA_MODEL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.endpoint = (endpoint or DEFAULT_OLLAMA_ENDPOINT).rstrip("/")
        self.model = model or DEFAULT_OLLAMA_MODEL
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str, timeout: Optional[float] = None) -> List[float]:
        """Embed *text*. *timeout* overrides the client timeout for this call."""
        if len(text) > MAX_PROMPT_CHARS:
            text = text[:MAX_PROMPT_CHARS]

        kwargs: Dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            resp = self._client.post(
                f"{self.endpoint}/api/embeddings",
                json={"model": self.model, "prompt": text},
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise EmbeddingTransportError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise EmbeddingTransportError(f"failed to call Ollama API: {e}") from e

        if resp.status_code != 200:
            raise EmbeddingTransportError(
                f"Ollama API error (status {resp.status_code}): {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            values = resp.json()["embedding"]
            return [float(x) for x in values]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingTransportError(f"failed to decode Ollama response: {e}") from e

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for i, text in enumerate(texts):
            try:
                vectors.append(self.embed(text))
            except EmbeddingTransportError as e:
                raise EmbeddingTransportError(f"failed to embed text {i}: {e}", e.status_code) from e
        return vectors

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "OllamaEmbedder":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class SentenceTransformerEmbedder(Embedder):
    """In-process embeddings; the model loads on first use."""

    def __init__(self, model: str = DEFAULT_ST_MODEL) -> None:
        self.model = model or DEFAULT_ST_MODEL

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str) -> List[float]:
        return _get_model(self.model).encode(text).tolist()

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        return _get_model(self.model).encode(list(texts)).tolist()


# ----------------------------------------------------------------------
# Wiring
# ----------------------------------------------------------------------

def probe_ollama(endpoint: str = DEFAULT_OLLAMA_ENDPOINT, timeout: float = 5.0) -> bool:
    """True if an Ollama server answers ``GET /api/version``."""
    try:
        resp = httpx.get(f"{endpoint.rstrip('/')}/api/version", timeout=timeout)
    except httpx.HTTPError:
        return False
    return resp.status_code == 200


def create_embedder(config: Optional[EmbeddingConfig] = None) -> Optional[Embedder]:
    """Build the embedder *config* asks for, or ``None`` if unavailable."""
    config = config or EmbeddingConfig()

    if config.provider == "none":
        return None

    if config.provider == "sentence-transformers":
        logger.info("Using sentence-transformers embedder")
        return SentenceTransformerEmbedder(config.model or DEFAULT_ST_MODEL)

    if config.probe and not probe_ollama(config.endpoint):
        logger.warning(
            "Ollama not reachable at {}; embedding features will be limited", config.endpoint
        )
        return None

    logger.info("Connected to Ollama for embeddings at {}", config.endpoint)
    return OllamaEmbedder(
        endpoint=config.endpoint,
        model=config.model or DEFAULT_OLLAMA_MODEL,
        timeout=config.timeout,
    )
