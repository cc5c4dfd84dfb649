"""Configuration models for the memory store and its embedder."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

__all__ = ["EmbeddingConfig", "MemoryConfig"]


class EmbeddingConfig(BaseModel):
    """Which embedding backend to use, if any."""

    provider: Literal["ollama", "sentence-transformers", "none"] = "ollama"
    endpoint: str = "http://localhost:11434"
    model: Optional[str] = None  # None picks the provider default
    timeout: float = Field(default=30.0, gt=0)
    probe: bool = True  # check Ollama is reachable before using it


class MemoryConfig(BaseModel):
    """Tier sizes and orchestrator policy."""

    model_config = ConfigDict(populate_by_name=True)

    short_term_max: int = Field(default=50, ge=1, alias="shortTermMax")
    working_max: int = Field(default=10, ge=1, alias="workingMax")
    similarity_cut: float = Field(default=0.7, ge=0.0, le=1.0, alias="similarityCut")

    consolidation_age: timedelta = timedelta(hours=1)
    promote_without_embedding: bool = True
    enforce_working_limit: bool = False

    context_candidates: int = Field(default=5, ge=0)
    context_recent: int = Field(default=10, ge=0)

    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)

    @classmethod
    def from_env(cls, prefix: str = "TIERED_MEMORY_", dotenv: bool = True) -> "MemoryConfig":
        """Build a config from ``<prefix>*`` environment variables.

        Recognised: ``SHORT_TERM_MAX``, ``WORKING_MAX``, ``SIMILARITY_CUT``,
        ``CONSOLIDATION_AGE_SECONDS``, ``PROMOTE_WITHOUT_EMBEDDING``,
        ``EMBEDDING_PROVIDER``, ``EMBEDDING_ENDPOINT``, ``EMBEDDING_MODEL``,
        ``EMBEDDING_TIMEOUT``. Unset variables keep their defaults.
        """
        if dotenv:
            load_dotenv()

        def env(name: str) -> Optional[str]:
            value = os.environ.get(prefix + name)
            return value if value not in (None, "") else None

        values = {}
        for name, key in (
            ("SHORT_TERM_MAX", "short_term_max"),
            ("WORKING_MAX", "working_max"),
            ("SIMILARITY_CUT", "similarity_cut"),
            ("PROMOTE_WITHOUT_EMBEDDING", "promote_without_embedding"),
        ):
            if env(name) is not None:
                values[key] = env(name)
        if env("CONSOLIDATION_AGE_SECONDS") is not None:
            values["consolidation_age"] = timedelta(seconds=float(env("CONSOLIDATION_AGE_SECONDS")))

        embedding = {}
        for name, key in (
            ("EMBEDDING_PROVIDER", "provider"),
            ("EMBEDDING_ENDPOINT", "endpoint"),
            ("EMBEDDING_MODEL", "model"),
            ("EMBEDDING_TIMEOUT", "timeout"),
        ):
            if env(name) is not None:
                embedding[key] = env(name)
        if embedding:
            values["embedding"] = EmbeddingConfig(**embedding)

        return cls.model_validate(values)
