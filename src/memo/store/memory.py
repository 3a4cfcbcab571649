"""In-process vector store backed by numpy. Nothing is persisted."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from memo.models import Memory
from memo.store.base import ScoredMemory, best_per_id, check_dimension, clamp_score, newest_per_id

logger = logging.getLogger(__name__)


class InMemoryVectorStore:
    """Brute-force cosine search over a list of rows."""

    def __init__(self, dimension: int) -> None:
        self._dimension = dimension
        self._rows: list[Memory] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    async def insert(self, memory: Memory) -> None:
        check_dimension(memory.embedding, self._dimension, f"insert {memory.id}")
        self._rows.append(memory)

    async def insert_batch(self, memories: Sequence[Memory]) -> None:
        for memory in memories:
            check_dimension(memory.embedding, self._dimension, f"insert {memory.id}")
        self._rows.extend(memories)

    async def delete(self, memory_id: str, version: int | None = None) -> int:
        keep = [
            m
            for m in self._rows
            if m.id != memory_id or (version is not None and m.version != version)
        ]
        removed = len(self._rows) - len(keep)
        self._rows = keep
        return removed

    async def get(self, memory_id: str) -> Memory | None:
        rows = [m for m in self._rows if m.id == memory_id]
        if not rows:
            return None
        return max(rows, key=lambda m: m.version)

    async def scan(self) -> list[Memory]:
        return newest_per_id(self._rows)

    async def count(self) -> int:
        return len({m.id for m in self._rows})

    async def clear(self) -> None:
        self._rows.clear()

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        min_score: float | None = None,
    ) -> list[ScoredMemory]:
        check_dimension(vector, self._dimension, "query")
        rows = newest_per_id(self._rows)
        if not rows or top_k <= 0:
            return []

        matrix = np.asarray([m.embedding for m in rows], dtype=np.float32)
        q = np.asarray(vector, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        norms[norms == 0] = 1.0
        similarities = matrix @ q / norms

        scored = [
            (memory, clamp_score(sim))
            for memory, sim in zip(rows, similarities)
        ]
        if min_score is not None:
            scored = [item for item in scored if item[1] >= min_score]
        return best_per_id(scored)[:top_k]
