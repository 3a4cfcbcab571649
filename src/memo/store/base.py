"""Vector store protocol and helpers shared by the adapters."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from memo.errors import DimensionMismatch
from memo.models import Memory

ScoredMemory = tuple[Memory, float]


@runtime_checkable
class VectorStore(Protocol):
    """Persistent home of every Memory.

    A logical memory may briefly own more than one row (one per ``version``);
    ``get`` and ``scan`` always surface the newest.
    """

    @property
    def dimension(self) -> int: ...

    async def insert(self, memory: Memory) -> None: ...

    async def insert_batch(self, memories: Sequence[Memory]) -> None: ...

    async def delete(self, memory_id: str, version: int | None = None) -> int:
        """Remove rows of ``memory_id`` (only ``version`` when given). Returns rows removed."""
        ...

    async def get(self, memory_id: str) -> Memory | None: ...

    async def scan(self) -> list[Memory]: ...

    async def count(self) -> int: ...

    async def clear(self) -> None: ...

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        min_score: float | None = None,
    ) -> list[ScoredMemory]:
        """Nearest memories by cosine similarity in [0, 1], descending."""
        ...


def check_dimension(vector: Sequence[float], dimension: int, where: str = "") -> None:
    if len(vector) != dimension:
        raise DimensionMismatch(dimension, len(vector), where)


def newest_per_id(memories: list[Memory]) -> list[Memory]:
    """Collapse rows of the same id to the newest version, keeping first-seen order."""
    newest: dict[str, Memory] = {}
    for memory in memories:
        current = newest.get(memory.id)
        if current is None or memory.version > current.version:
            newest[memory.id] = memory
    return list(newest.values())


def best_per_id(scored: list[ScoredMemory]) -> list[ScoredMemory]:
    """One entry per id (highest score wins), sorted by score descending."""
    best: dict[str, ScoredMemory] = {}
    for memory, score in scored:
        current = best.get(memory.id)
        if current is None or score > current[1]:
            best[memory.id] = (memory, score)
    return sorted(best.values(), key=lambda item: item[1], reverse=True)


def clamp_score(value: float) -> float:
    return min(1.0, max(0.0, float(value)))
