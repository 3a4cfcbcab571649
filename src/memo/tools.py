"""Memory tools for AI agents.

These coroutines are designed to be exposed as tools to an assistant so it
can recall and maintain its own long-term memory. They return short text and
report expected outcomes (duplicates, missing ids) as text instead of raising.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from memo.errors import DuplicateDetected, NotFound
from memo.ui import preview

if TYPE_CHECKING:
    from memo.service import MemoService

Tool = Callable[..., Awaitable[str]]


def get_memory_tools(service: MemoService) -> dict[str, Tool]:
    """Return a dict of tool_name -> coroutine function for memory operations."""

    async def recall(query: str, limit: int | None = None, tree: bool = False) -> str:
        """Search long-term memory. ``tree`` also follows related memories."""
        result = await service.search(query, limit=limit, tree=tree)
        if not result.candidates:
            return "(no matching memories)"
        lines = []
        for candidate in result.candidates:
            indent = "  " * (candidate.layer_index - 1)
            lines.append(
                f"{indent}[{candidate.provenance}:{candidate.display_score:.2f}] "
                f"{candidate.memory_id}: {preview(candidate.memory.content, 200)}"
            )
        return "\n".join(lines)

    async def remember(content: str, tags: list[str] | None = None, force: bool = False) -> str:
        """Store a new memory unless a near-duplicate exists (``force`` skips the check)."""
        try:
            memory = await service.embed_text(content, tags, force=force)
        except DuplicateDetected as e:
            ids = ", ".join(f"{m.id} ({m.score:.2f})" for m in e.matches)
            return f"Not stored: similar memories exist: {ids}. Use revise or force=True."
        return f"Stored memory {memory.id}"

    async def revise(memory_id: str, content: str, tags: list[str] | None = None) -> str:
        """Replace the content of an existing memory."""
        try:
            result = await service.update(memory_id, content, tags)
        except NotFound:
            return f"No memory with ID {memory_id}"
        return f"Updated memory {result.memory.id}"

    async def forget(memory_id: str) -> str:
        """Delete a memory."""
        try:
            memory = await service.delete(memory_id)
        except NotFound:
            return f"No memory with ID {memory_id}"
        return f"Deleted memory {memory.id}: {preview(memory.content, 80)}"

    return {
        "recall": recall,
        "remember": remember,
        "revise": revise,
        "forget": forget,
    }
