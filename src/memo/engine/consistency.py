"""Update, merge and delete with insert-before-delete ordering.

Any remote call happens before the first write, so a failing embedding leaves
the store untouched. Once the new record is written, a failing cleanup delete
is logged and reported rather than rolled back: the worst outcome is an extra
row, never a lost one.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from memo.errors import MemoError, NotFound, ValidationError
from memo.gateways.base import Embedder
from memo.models import (
    Memory,
    MergeResult,
    UpdateResult,
    normalize_tags,
    normalize_text,
    union_tags,
    utcnow,
)
from memo.store.base import VectorStore

logger = logging.getLogger(__name__)


def _require_content(content: str) -> str:
    text = normalize_text(content)
    if not text:
        raise ValidationError("Content must not be empty")
    return text


class ConsistencyOperations:
    def __init__(self, store: VectorStore, embedder: Embedder) -> None:
        self.store = store
        self.embedder = embedder

    async def _fetch(self, memory_id: str) -> Memory:
        memory = await self.store.get(memory_id)
        if memory is None:
            raise NotFound(memory_id)
        return memory

    # ── Update ────────────────────────────────────────────────

    async def update(
        self,
        memory_id: str,
        content: str,
        tags: list[str] | None = None,
    ) -> UpdateResult:
        previous = await self._fetch(memory_id)
        text = _require_content(content)
        embedding = await self.embedder.embed(text)

        replacement = replace(
            previous,
            content=content,
            embedding=embedding,
            tags=normalize_tags(tags) if tags is not None else list(previous.tags),
            title="",
            summary="",
            updated_at=previous.next_update_time(),
        )
        await self.store.insert(replacement)
        logger.info("Updated memory %s (version %d)", memory_id, replacement.version)

        stale_kept = False
        try:
            await self.store.delete(memory_id, version=previous.version)
        except MemoError as e:
            stale_kept = True
            logger.warning(
                "Stale version %d of %s could not be removed: %s",
                previous.version,
                memory_id,
                e,
            )
        return UpdateResult(memory=replacement, previous=previous, stale_version_kept=stale_kept)

    # ── Merge ─────────────────────────────────────────────────

    async def merge(
        self,
        memory_ids: list[str],
        content: str,
        tags: list[str] | None = None,
    ) -> MergeResult:
        ids = list(dict.fromkeys(memory_ids))
        if len(ids) < 2:
            raise ValidationError("Merge needs at least two distinct memory IDs", ids=memory_ids)
        sources = [await self._fetch(memory_id) for memory_id in ids]
        text = _require_content(content)

        merged_tags = (
            normalize_tags(tags)
            if tags is not None
            else union_tags(*(source.tags for source in sources))
        )
        embedding = await self.embedder.embed(text)
        created_at = min(source.created_at for source in sources)
        merged = Memory.create(content, embedding, merged_tags)
        merged.created_at = created_at
        merged.updated_at = max(utcnow(), created_at)

        await self.store.insert(merged)
        logger.info("Merged %d memories into %s", len(sources), merged.id)

        failed: list[str] = []
        for source in sources:
            try:
                await self.store.delete(source.id)
            except MemoError as e:
                failed.append(source.id)
                logger.warning("Merged source %s could not be removed: %s", source.id, e)
        return MergeResult(memory=merged, source_ids=ids, failed_deletes=failed)

    # ── Delete ────────────────────────────────────────────────

    async def delete(self, memory_id: str) -> Memory:
        memory = await self._fetch(memory_id)
        removed = await self.store.delete(memory_id)
        logger.info("Deleted memory %s (%d rows)", memory_id, removed)
        return memory
