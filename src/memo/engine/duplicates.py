"""Duplicate guard: looks for near-identical memories before an insert."""

from __future__ import annotations

import logging

from memo.errors import ValidationError
from memo.gateways.base import Embedder
from memo.models import (
    DuplicateCheck,
    DuplicateMatch,
    DuplicatesFound,
    NoDuplicate,
    check_threshold,
    normalize_text,
)
from memo.store.base import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_DUPLICATE_THRESHOLD = 0.85
DUPLICATE_TOP_K = 5


class DuplicateGuard:
    """Read-only check; never writes to the store."""

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        top_k: int = DUPLICATE_TOP_K,
    ) -> None:
        check_threshold(threshold, "duplicate_threshold")
        self.store = store
        self.embedder = embedder
        self.threshold = threshold
        self.top_k = top_k

    async def check(
        self,
        content: str,
        tags: list[str] | None = None,
        threshold: float | None = None,
    ) -> DuplicateCheck:
        """Return the stored memories scoring at or above ``threshold``, best first.

        ``tags`` are accepted so callers can pass the full candidate record; the
        decision is made on content similarity alone.
        """
        text = normalize_text(content)
        if not text:
            raise ValidationError("Content must not be empty")
        if threshold is not None:
            check_threshold(threshold)
        vector = await self.embedder.embed(text)
        return await self.check_embedding(vector, threshold)

    async def check_embedding(
        self, vector: list[float], threshold: float | None = None
    ) -> DuplicateCheck:
        """Same as ``check`` for content that is already embedded."""
        threshold = self.threshold if threshold is None else threshold
        check_threshold(threshold)
        hits = await self.store.query(vector, self.top_k, min_score=threshold)

        matches: dict[str, DuplicateMatch] = {}
        for memory, score in hits:
            if score < threshold:
                continue
            current = matches.get(memory.id)
            if current is None or score > current.score:
                matches[memory.id] = DuplicateMatch.from_memory(memory, score)

        if not matches:
            return NoDuplicate()
        ranked = sorted(matches.values(), key=lambda m: m.score, reverse=True)
        logger.debug(
            "Duplicate check: %d matches >= %.2f (best %.3f)",
            len(ranked),
            threshold,
            ranked[0].score,
        )
        return DuplicatesFound(matches=ranked)
