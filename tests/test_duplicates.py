"""Tests for the duplicate guard."""

import pytest

from conftest import QUERY_VEC, make_memory, vec
from memo.engine.duplicates import DuplicateGuard
from memo.errors import ValidationError
from memo.models import DuplicatesFound, NoDuplicate


@pytest.fixture
def guard(store, embedder) -> DuplicateGuard:
    embedder.vectors["new note"] = QUERY_VEC
    return DuplicateGuard(store, embedder)


class TestDuplicateGuard:
    @pytest.mark.asyncio
    async def test_returns_matches_at_or_above_threshold(self, guard, store):
        await store.insert_batch(
            [
                make_memory("close", vec(0.90)),
                make_memory("closest", vec(0.97)),
                make_memory("far", vec(0.60)),
            ]
        )
        result = await guard.check("new note")
        assert isinstance(result, DuplicatesFound)
        assert result.found
        assert [m.excerpt for m in result.matches] == ["closest", "close"]
        assert result.matches[0].score >= result.matches[1].score >= 0.85

    @pytest.mark.asyncio
    async def test_threshold_above_all_scores(self, guard, store):
        await store.insert(make_memory("close", vec(0.90)))
        result = await guard.check("new note", threshold=0.99)
        assert isinstance(result, NoDuplicate)
        assert not result.found

    @pytest.mark.asyncio
    async def test_per_call_threshold_override(self, guard, store):
        await store.insert(make_memory("related", vec(0.70)))
        assert isinstance(await guard.check("new note"), NoDuplicate)
        assert isinstance(await guard.check("new note", threshold=0.6), DuplicatesFound)

    @pytest.mark.asyncio
    async def test_empty_store(self, guard):
        assert isinstance(await guard.check("new note"), NoDuplicate)

    @pytest.mark.asyncio
    async def test_match_carries_memory_fields(self, guard, store):
        memory = make_memory("close", vec(0.95), ["db"])
        await store.insert(memory)
        match = (await guard.check("new note")).matches[0]
        assert match.id == memory.id
        assert match.title == "close"
        assert match.tags == ["db"]
        assert match.created_at == memory.created_at

    @pytest.mark.asyncio
    async def test_content_is_normalized_before_embedding(self, guard, embedder):
        await guard.check("  new\n\nnote  ")
        assert embedder.calls == ["new note"]

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, guard, embedder):
        with pytest.raises(ValidationError):
            await guard.check("   ")
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_invalid_threshold_rejected(self, guard):
        with pytest.raises(ValidationError):
            await guard.check("new note", threshold=1.2)

    @pytest.mark.asyncio
    async def test_no_side_effects(self, guard, store):
        await store.insert(make_memory("close", vec(0.95)))
        await guard.check("new note")
        assert await store.count() == 1
