"""Final ordering of search candidates, with an optional rerank pass."""

from __future__ import annotations

import logging

from memo.gateways.base import Reranker
from memo.models import ResultSet, SearchCandidate

logger = logging.getLogger(__name__)

# (max candidate count, min average vector score) pairs under which the vector
# ranking is trusted as-is.
CONFIDENT_BANDS: tuple[tuple[int, float], ...] = ((15, 0.80), (25, 0.85))


def should_rerank(candidates: list[SearchCandidate], limit: int) -> bool:
    count = len(candidates)
    if count <= limit:
        return False
    average = sum(c.vector_score for c in candidates) / count
    for max_count, min_average in CONFIDENT_BANDS:
        if count <= max_count and average > min_average:
            return False
    return True


def order_tree(candidates: list[SearchCandidate]) -> list[SearchCandidate]:
    """Layer first, then vector score within a layer."""
    return sorted(candidates, key=lambda c: (c.layer_index, -c.vector_score))


class ResultRanker:
    def __init__(self, reranker: Reranker | None = None) -> None:
        self.reranker = reranker

    async def rank(
        self,
        candidates: list[SearchCandidate],
        query: str,
        limit: int,
    ) -> tuple[list[SearchCandidate], bool]:
        """Return the top ``limit`` candidates and whether a rerank was applied."""
        if self.reranker is None or not should_rerank(candidates, limit):
            logger.debug("Rerank skipped for %d candidates (limit %d)", len(candidates), limit)
            ordered = sorted(candidates, key=lambda c: c.vector_score, reverse=True)
            return ordered[:limit], False

        documents = [c.memory.content for c in candidates]
        scores = await self.reranker.rerank(query, documents, top_n=limit)

        ranked: list[SearchCandidate] = []
        seen: set[int] = set()
        for index, score in sorted(scores, key=lambda pair: pair[1], reverse=True):
            if not 0 <= index < len(candidates) or index in seen:
                continue
            seen.add(index)
            candidate = candidates[index]
            candidate.rerank_score = score
            ranked.append(candidate)
        logger.debug("Reranked %d candidates down to %d", len(candidates), len(ranked[:limit]))
        return ranked[:limit], True

    async def rank_result(self, result: ResultSet, limit: int) -> ResultSet:
        """Order a ``ResultSet`` in place according to its mode."""
        if result.mode == "tree":
            result.candidates = order_tree(result.candidates)
            result.reranked = False
            return result
        result.candidates, result.reranked = await self.rank(
            result.candidates, result.query, limit
        )
        return result
