"""memo service: the hub between configuration, adapters and the engine.

Responsibilities:
1. Build the embedding/rerank gateways and the vector store from config
2. Guard inserts with the duplicate check
3. Run layered search and hand its output to the ranker
4. Route update / merge / delete through the consistency operations

Nothing here prints or prompts; callers get typed results or ``MemoError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from memo.config import MemoConfig, ensure_initialized
from memo.engine.consistency import ConsistencyOperations
from memo.engine.duplicates import DuplicateGuard
from memo.engine.ranker import ResultRanker
from memo.engine.search import LayeredSearchEngine
from memo.errors import DuplicateDetected, ValidationError
from memo.gateways.base import Embedder, Reranker
from memo.gateways.embedding import HTTPEmbedder
from memo.gateways.rerank import HTTPReranker
from memo.models import (
    DuplicateCheck,
    DuplicatesFound,
    Memory,
    MergeResult,
    ResultSet,
    SearchOptions,
    TimeRange,
    UpdateResult,
    check_threshold,
    normalize_text,
)
from memo.parser import InputGroup, Section, load_input
from memo.store.base import VectorStore
from memo.store.lance import LanceVectorStore

logger = logging.getLogger(__name__)

RERANK_POOL_MIN = 100
RERANK_POOL_FACTOR = 5


@dataclass
class SkippedSection:
    section: Section
    duplicate: DuplicateDetected


@dataclass
class EmbedReport:
    """Outcome of embedding one input (text, file or directory)."""

    stored: list[Memory] = field(default_factory=list)
    skipped: list[SkippedSection] = field(default_factory=list)
    files: int = 0


class MemoService:
    """Typed entry point used by the CLI and the assistant tools."""

    def __init__(
        self,
        config: MemoConfig,
        *,
        store: VectorStore | None = None,
        embedder: Embedder | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.config = config
        self.embedder = embedder or HTTPEmbedder(
            config.embedding.model,
            api_key=config.embedding.api_key,
            base_url=config.embedding.base_url,
            provider=config.embedding.provider,
            dimension=config.embedding.dimension,
        )
        self.store = store or LanceVectorStore(config.brain_path, self.embedder.dimension)
        if reranker is None and config.rerank.enabled:
            reranker = HTTPReranker(
                config.rerank.api_key,
                base_url=config.rerank.base_url,
                model=config.rerank.model,
            )
        self.reranker = reranker

        search = config.search
        self.guard = DuplicateGuard(self.store, self.embedder, search.duplicate_threshold)
        self.engine = LayeredSearchEngine(
            self.store,
            self.embedder,
            branch_limit=search.branch_limit,
            max_depth=search.max_depth,
            fan_out=search.fan_out,
            require_tag_overlap=search.require_tag_overlap,
        )
        self.ranker = ResultRanker(self.reranker)
        self.operations = ConsistencyOperations(self.store, self.embedder)

    @classmethod
    def from_config(cls, config: MemoConfig) -> MemoService:
        """Build a service backed by the configured HTTP gateways and LanceDB."""
        config.validate_api_keys()
        ensure_initialized(config)
        return cls(config)

    # ── Insert ────────────────────────────────────────────────

    async def duplicate_check(
        self,
        content: str,
        tags: list[str] | None = None,
        threshold: float | None = None,
    ) -> DuplicateCheck:
        return await self.guard.check(content, tags, threshold)

    async def embed_text(
        self,
        content: str,
        tags: list[str] | None = None,
        *,
        force: bool = False,
        threshold: float | None = None,
        title: str = "",
        source_file: str | None = None,
    ) -> Memory:
        """Store one memory, raising ``DuplicateDetected`` unless ``force``."""
        text = normalize_text(content)
        if not text:
            raise ValidationError("Content must not be empty")
        embedding = await self.embedder.embed(text)
        if not force:
            check = await self.guard.check_embedding(embedding, threshold)
            if isinstance(check, DuplicatesFound):
                raise DuplicateDetected(
                    check.matches,
                    self.guard.threshold if threshold is None else threshold,
                )
        memory = Memory.create(
            content, embedding, tags, title=title, source_file=source_file
        )
        await self.store.insert(memory)
        logger.info("Stored memory %s (%d tags)", memory.id, len(memory.tags))
        return memory

    async def embed(
        self,
        value: str,
        tags: list[str] | None = None,
        *,
        force: bool = False,
        threshold: float | None = None,
    ) -> EmbedReport:
        """Embed literal text, a Markdown file or a directory of Markdown files.

        A duplicate plain-text input raises ``DuplicateDetected``; duplicate file
        sections are skipped and listed in the report.
        """
        if threshold is not None:
            check_threshold(threshold, "duplicate_threshold")
        groups = load_input(value, tags)
        report = EmbedReport()
        for group in groups:
            if group.source is None:
                section = group.sections[0]
                report.stored.append(
                    await self.embed_text(
                        section.content, section.tags, force=force, threshold=threshold
                    )
                )
                continue
            report.files += 1
            if force:
                report.stored.extend(await self._embed_group_forced(group))
            else:
                await self._embed_group_guarded(group, report, threshold)
        return report

    async def _embed_group_forced(self, group: InputGroup) -> list[Memory]:
        texts = [normalize_text(s.content) for s in group.sections]
        vectors = await self.embedder.embed_batch(texts)
        memories = [
            Memory.create(
                s.content, vector, s.tags, title=s.title, source_file=s.source_file
            )
            for s, vector in zip(group.sections, vectors)
        ]
        await self.store.insert_batch(memories)
        logger.info("Stored %d sections from %s", len(memories), group.source)
        return memories

    async def _embed_group_guarded(
        self, group: InputGroup, report: EmbedReport, threshold: float | None
    ) -> None:
        for section in group.sections:
            try:
                memory = await self.embed_text(
                    section.content,
                    section.tags,
                    threshold=threshold,
                    title=section.title,
                    source_file=section.source_file,
                )
            except DuplicateDetected as e:
                logger.info("Skipped duplicate section %r of %s", section.title, group.source)
                report.skipped.append(SkippedSection(section, e))
                continue
            report.stored.append(memory)

    # ── Search ────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        *,
        limit: int | None = None,
        threshold: float | None = None,
        tree: bool = False,
        time_range: TimeRange | None = None,
        tags: list[str] | None = None,
    ) -> ResultSet:
        limit = self.config.search.limit if limit is None else limit
        options = SearchOptions(
            query=query,
            mode="tree" if tree else "flat",
            limit=limit,
            threshold=self.config.search.threshold if threshold is None else threshold,
            time_range=time_range,
            tags=list(tags or []),
        )
        if self.reranker is not None and not tree:
            options.candidate_limit = max(RERANK_POOL_MIN, limit * RERANK_POOL_FACTOR)

        result = await self.engine.search(options)
        return await self.ranker.rank_result(result, limit)

    # ── Listing & maintenance ─────────────────────────────────

    async def list(self) -> list[Memory]:
        memories = await self.store.scan()
        return sorted(memories, key=lambda m: m.updated_at, reverse=True)

    async def count(self) -> int:
        return await self.store.count()

    async def clear(self) -> int:
        removed = await self.store.count()
        await self.store.clear()
        logger.info("Cleared %d memories", removed)
        return removed

    # ── Consistency ───────────────────────────────────────────

    async def update(
        self, memory_id: str, content: str, tags: list[str] | None = None
    ) -> UpdateResult:
        return await self.operations.update(memory_id, content, tags)

    async def merge(
        self, memory_ids: list[str], content: str, tags: list[str] | None = None
    ) -> MergeResult:
        return await self.operations.merge(memory_ids, content, tags)

    async def delete(self, memory_id: str) -> Memory:
        return await self.operations.delete(memory_id)
