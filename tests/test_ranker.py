"""Tests for the result ranker and its rerank-skip rule."""

import pytest

from conftest import make_memory, vec
from memo.engine.ranker import ResultRanker, order_tree, should_rerank
from memo.errors import RerankGatewayError
from memo.models import ResultSet, SearchCandidate


def candidates(scores, prefix="m"):
    return [
        SearchCandidate(make_memory(f"{prefix}{i}", vec(s)), vector_score=s)
        for i, s in enumerate(scores)
    ]


class TestShouldRerank:
    def test_count_within_limit(self):
        assert not should_rerank(candidates([0.1] * 5), limit=5)

    def test_small_confident_pool(self):
        # 12 candidates, limit 10, average 0.95
        assert not should_rerank(candidates([0.95] * 12), limit=10)

    def test_small_pool_low_confidence(self):
        assert should_rerank(candidates([0.5] * 12), limit=10)

    def test_medium_pool_needs_higher_average(self):
        assert should_rerank(candidates([0.82] * 20), limit=5)
        assert not should_rerank(candidates([0.9] * 20), limit=5)

    def test_large_pool_always_reranked(self):
        assert should_rerank(candidates([0.99] * 30), limit=5)

    def test_small_band_threshold(self):
        assert should_rerank(candidates([0.75] * 15), limit=5)
        assert not should_rerank(candidates([0.81] * 15), limit=5)


class TestResultRanker:
    @pytest.mark.asyncio
    async def test_no_reranker_orders_by_vector_score(self):
        pool = candidates([0.4, 0.9, 0.6, 0.7])
        ranked, reranked = await ResultRanker(None).rank(pool, "q", limit=2)
        assert not reranked
        assert [c.vector_score for c in ranked] == [0.9, 0.7]
        assert all(c.provenance == "V" for c in ranked)

    @pytest.mark.asyncio
    async def test_skip_does_not_call_reranker(self, reranker):
        pool = candidates([0.95] * 12)
        ranked, reranked = await ResultRanker(reranker).rank(pool, "q", limit=10)
        assert not reranked
        assert len(ranked) == 10
        assert reranker.calls == []

    @pytest.mark.asyncio
    async def test_apply_orders_by_rerank_score(self, reranker):
        pool = candidates([0.5] * 8)
        reranker.scores = {"m3": 0.99, "m6": 0.7, "m0": 0.4}
        ranked, reranked = await ResultRanker(reranker).rank(pool, "query", limit=3)

        assert reranked
        assert [c.memory.content for c in ranked] == ["m3", "m6", "m0"]
        assert [c.rerank_score for c in ranked] == [0.99, 0.7, 0.4]
        assert all(c.vector_score == 0.5 for c in ranked)
        assert all(c.provenance == "R" for c in ranked)
        query, documents, top_n = reranker.calls[0]
        assert query == "query"
        assert len(documents) == 8
        assert top_n == 3

    @pytest.mark.asyncio
    async def test_out_of_range_indexes_ignored(self, reranker):
        pool = candidates([0.5] * 8)
        reranker.scores = {"m1": 0.9}
        reranker.extra = [(42, 1.0), (-1, 1.0)]
        ranked, _ = await ResultRanker(reranker).rank(pool, "q", limit=2)
        assert ranked[0].memory.content == "m1"
        assert len(ranked) == 2

    @pytest.mark.asyncio
    async def test_rerank_failure_propagates(self, reranker):
        reranker.fail = True
        with pytest.raises(RerankGatewayError):
            await ResultRanker(reranker).rank(candidates([0.5] * 8), "q", limit=3)

    @pytest.mark.asyncio
    async def test_tree_result_is_never_reranked(self, reranker):
        nodes = candidates([0.5, 0.9, 0.7], prefix="t")
        nodes[0].layer_index = 2
        nodes[0].parent_id = nodes[1].memory_id
        result = ResultSet(query="q", mode="tree", candidates=nodes)

        ranked = await ResultRanker(reranker).rank_result(result, limit=1)
        assert not ranked.reranked
        assert reranker.calls == []
        assert [c.memory.content for c in ranked.candidates] == ["t1", "t2", "t0"]


class TestOrderTree:
    def test_layer_then_score(self):
        nodes = candidates([0.3, 0.8, 0.9, 0.5])
        nodes[2].layer_index = 2
        nodes[3].layer_index = 2
        assert [c.memory.content for c in order_tree(nodes)] == ["m1", "m0", "m2", "m3"]
