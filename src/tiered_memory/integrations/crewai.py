"""
CrewAI tool wrappers for tiered-memory.

Requires: pip install tiered-memory[crewai]

Usage:
    from tiered_memory.integrations.crewai import MemorySearchTool, MemoryStoreTool

    agent = Agent(tools=[MemorySearchTool(store=store)])
"""

from __future__ import annotations

from typing import Any

try:
    from crewai.tools import BaseTool
except ImportError as e:
    raise ImportError(
        "CrewAI integration requires crewai. "
        "Install with: pip install tiered-memory[crewai]"
    ) from e

from tiered_memory.store import MemoryStore


class MemorySearchTool(BaseTool):
    """CrewAI tool for recalling memory context."""

    name: str = "Memory Search"
    description: str = (
        "Recall active tasks, related long-term memories and recent "
        "conversation for a query."
    )

    store: Any

    def _run(self, query: str) -> str:
        store: MemoryStore = self.store
        return store.get_context(query) or "No relevant memories found."


class MemoryStoreTool(BaseTool):
    """CrewAI tool for recording information in memory."""

    name: str = "Memory Store"
    description: str = (
        "Remember a fact, decision or note, optionally in long-term memory."
    )

    store: Any

    def _run(self, text: str, long_term: bool = False) -> str:
        store: MemoryStore = self.store
        if long_term:
            store.remember(text, {"source": "tool"})
        else:
            store.add_short_term(text, {"source": "tool"})
        return f"Stored in {'long-term' if long_term else 'short-term'} memory."
