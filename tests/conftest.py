"""Shared fixtures: deterministic gateways and an in-memory store."""

from __future__ import annotations

import hashlib
import math
from datetime import datetime, timedelta, timezone

import pytest

from memo.errors import EmbeddingGatewayError, RerankGatewayError, StoreIOError
from memo.models import Memory
from memo.store.memory import InMemoryVectorStore

DIM = 3


# ── Helpers ───────────────────────────────────────────────────


def vec(score: float, turn: float = 1.0) -> list[float]:
    """Unit vector whose cosine similarity with ``[1, 0, 0]`` is ``score``.

    ``turn`` rotates the off-axis part between the y and z axes, so two vectors
    with equal ``score`` can still differ from each other.
    """
    rest = math.sqrt(max(0.0, 1.0 - score * score))
    return [score, rest * turn, rest * math.sqrt(max(0.0, 1.0 - turn * turn))]


QUERY_VEC = [1.0, 0.0, 0.0]


def hashed_vector(text: str, dimension: int = DIM) -> list[float]:
    digest = hashlib.sha256(text.encode()).digest()
    raw = [b / 255.0 + 0.01 for b in digest[:dimension]]
    norm = math.sqrt(sum(x * x for x in raw))
    return [x / norm for x in raw]


def make_memory(
    content: str,
    vector: list[float],
    tags: list[str] | None = None,
    *,
    age_days: int = 0,
    memory_id: str | None = None,
) -> Memory:
    moment = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc) - timedelta(days=age_days)
    memory = Memory.create(content, vector, tags)
    memory.created_at = moment
    memory.updated_at = moment
    if memory_id:
        memory.id = memory_id
    return memory


# ── Fakes ─────────────────────────────────────────────────────


class FakeEmbedder:
    """Returns registered vectors for known texts and a hash-derived one otherwise."""

    def __init__(self, dimension: int = DIM, vectors: dict[str, list[float]] | None = None):
        self._dimension = dimension
        self.vectors = dict(vectors or {})
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.fail = False

    @property
    def dimension(self) -> int:
        return self._dimension

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        return hashed_vector(text, self._dimension)

    async def embed(self, text: str) -> list[float]:
        if self.fail:
            raise EmbeddingGatewayError("embedding service unavailable")
        self.calls.append(text)
        return self._vector(text)

    async def embed_batch(self, texts):
        if self.fail:
            raise EmbeddingGatewayError("embedding service unavailable")
        self.batch_calls.append(list(texts))
        return [self._vector(t) for t in texts]


class FakeReranker:
    """Scores documents from a content -> score map (unknown documents score 0)."""

    def __init__(self, scores: dict[str, float] | None = None):
        self.scores = dict(scores or {})
        self.calls: list[tuple[str, list[str], int | None]] = []
        self.extra: list[tuple[int, float]] = []
        self.fail = False

    async def rerank(self, query, documents, top_n=None):
        if self.fail:
            raise RerankGatewayError("rerank service unavailable")
        self.calls.append((query, list(documents), top_n))
        pairs = [(i, self.scores.get(doc, 0.0)) for i, doc in enumerate(documents)]
        pairs.sort(key=lambda p: p[1], reverse=True)
        if top_n is not None:
            pairs = pairs[:top_n]
        return pairs + self.extra


class FlakyStore(InMemoryVectorStore):
    """In-memory store whose deletes fail for selected ids."""

    def __init__(self, dimension: int = DIM):
        super().__init__(dimension)
        self.fail_delete_ids: set[str] = set()

    async def delete(self, memory_id, version=None):
        if memory_id in self.fail_delete_ids:
            raise StoreIOError("disk full", memory_id=memory_id)
        return await super().delete(memory_id, version)


# ── Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def reranker() -> FakeReranker:
    return FakeReranker()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()
