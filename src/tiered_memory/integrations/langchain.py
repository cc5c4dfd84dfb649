"""
LangChain tool wrappers for tiered-memory.

Requires: pip install tiered-memory[langchain]

Usage:
    from tiered_memory.integrations.langchain import MemorySearchTool, MemoryStoreTool

    store = MemoryStore(embedder=OllamaEmbedder())
    tools = [MemorySearchTool(store=store), MemoryStoreTool(store=store)]
    agent = create_react_agent(llm, tools)
"""

from __future__ import annotations

from typing import Any, Type

try:
    from langchain_core.tools import BaseTool
    from pydantic import BaseModel, ConfigDict, Field
except ImportError as e:
    raise ImportError(
        "LangChain integration requires langchain-core. "
        "Install with: pip install tiered-memory[langchain]"
    ) from e

from tiered_memory.store import MemoryStore


class _SearchInput(BaseModel):
    query: str = Field(description="What to recall from memory")
    max_fragments: int = Field(default=30, description="Fragment budget for the assembled context")


class MemorySearchTool(BaseTool):
    """LangChain tool that returns assembled memory context for a query."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = "memory_search"
    description: str = (
        "Recall the user's active tasks, related long-term memories and the "
        "most recent conversation turns for a query."
    )
    args_schema: Type[BaseModel] = _SearchInput

    store: Any  # MemoryStore; Any keeps pydantic from introspecting it

    def _run(self, query: str, max_fragments: int = 30) -> str:
        store: MemoryStore = self.store
        context = store.get_context(query, max_tokens=max_fragments)
        return context or "No relevant memories found."


class _StoreInput(BaseModel):
    text: str = Field(description="Text to remember")
    long_term: bool = Field(default=False, description="Store in long-term memory instead of short-term")


class MemoryStoreTool(BaseTool):
    """LangChain tool for recording information in memory."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = "memory_store"
    description: str = (
        "Remember a fact, decision or note. Use long_term for things that "
        "should be recallable beyond the current conversation."
    )
    args_schema: Type[BaseModel] = _StoreInput

    store: Any

    def _run(self, text: str, long_term: bool = False) -> str:
        store: MemoryStore = self.store
        if long_term:
            entry = store.remember(text, {"source": "tool"})
            return f"Stored in long-term memory ({entry.id})."
        entry = store.add_short_term(text, {"source": "tool"})
        return f"Stored in short-term memory ({entry.id})."
