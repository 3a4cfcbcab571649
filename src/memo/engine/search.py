"""Layered semantic search.

Flat mode is a single nearest-neighbour query. Tree mode is a funnel: the
query's hits become roots, then every accepted node is used as a new query
(seeded with its own stored embedding) against a stricter threshold, layer by
layer, until the node budget or the threshold schedule runs out.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from memo.gateways.base import Embedder
from memo.models import (
    Memory,
    ResultSet,
    SearchCandidate,
    SearchOptions,
    check_threshold,
    normalize_text,
)
from memo.store.base import ScoredMemory, VectorStore, best_per_id

logger = logging.getLogger(__name__)

# Only 0.10, 0.07 and 0.05 are documented; alone they reach 0.57 at layer four
# from 0.35, not the documented 0.59. The second 0.07 matches 0.59 and is unverified.
DEFAULT_INCREMENTS: tuple[float, ...] = (0.10, 0.07, 0.07, 0.05)
FLOOR_INCREMENT = 0.03
THRESHOLD_CAP = 0.95
DEFAULT_MAX_DEPTH = 5
DEFAULT_BRANCH_LIMIT = 3
DEFAULT_FAN_OUT = 4

_EPS = 1e-9


@dataclass
class ThresholdSchedule:
    """Per-layer minimum similarity; entry ``i`` gates layer ``i + 1``."""

    thresholds: list[float] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        base: float,
        *,
        increments: tuple[float, ...] = DEFAULT_INCREMENTS,
        floor: float = FLOOR_INCREMENT,
        cap: float = THRESHOLD_CAP,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> ThresholdSchedule:
        check_threshold(base)
        thresholds = [base]
        current = base
        step_index = 0
        while len(thresholds) < max_depth:
            step = increments[step_index] if step_index < len(increments) else floor
            step_index += 1
            nxt = round(current + step, 6)
            if nxt > cap + _EPS:
                if cap - current >= floor - _EPS:
                    thresholds.append(cap)
                break
            thresholds.append(nxt)
            current = nxt
        return cls(thresholds)

    def __len__(self) -> int:
        return len(self.thresholds)

    def __getitem__(self, index: int) -> float:
        return self.thresholds[index]


@dataclass
class _Proposal:
    memory: Memory
    score: float
    seed: SearchCandidate
    seed_index: int


class LayeredSearchEngine:
    """Expands one query into a flat ranking or a forest of related memories."""

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        *,
        branch_limit: int = DEFAULT_BRANCH_LIMIT,
        max_depth: int = DEFAULT_MAX_DEPTH,
        fan_out: int = DEFAULT_FAN_OUT,
        require_tag_overlap: bool = True,
        increments: tuple[float, ...] = DEFAULT_INCREMENTS,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.branch_limit = branch_limit
        self.max_depth = max_depth
        self.fan_out = fan_out
        self.require_tag_overlap = require_tag_overlap
        self.increments = increments

    def schedule_for(self, base: float) -> ThresholdSchedule:
        return ThresholdSchedule.build(
            base, increments=self.increments, max_depth=self.max_depth
        )

    async def search(self, options: SearchOptions) -> ResultSet:
        options.validate()
        vector = await self.embedder.embed(normalize_text(options.query))
        if options.mode == "tree":
            result = await self._search_tree(options, vector)
        else:
            result = await self._search_flat(options, vector)
        result.candidates = self._post_filter(result.candidates, options)
        return result

    # ── Flat ──────────────────────────────────────────────────

    async def _search_flat(self, options: SearchOptions, vector: list[float]) -> ResultSet:
        pool = options.pool_size
        hits = await self.store.query(vector, pool, min_score=options.threshold)
        candidates = [
            SearchCandidate(memory=memory, vector_score=score)
            for memory, score in best_per_id(hits)
            if score >= options.threshold
        ]
        logger.debug("Flat search: %d candidates (pool %d)", len(candidates), pool)
        return ResultSet(
            query=options.query,
            mode="flat",
            candidates=candidates,
            thresholds=[options.threshold],
        )

    # ── Tree ──────────────────────────────────────────────────

    async def _search_tree(self, options: SearchOptions, vector: list[float]) -> ResultSet:
        schedule = self.schedule_for(options.threshold)
        budget = options.limit
        visited: set[str] = set()
        nodes: list[SearchCandidate] = []

        hits = await self.store.query(vector, budget, min_score=schedule[0])
        frontier: list[SearchCandidate] = []
        for memory, score in best_per_id(hits)[:budget]:
            if score < schedule[0]:
                continue
            node = SearchCandidate(memory=memory, vector_score=score, layer_index=1)
            visited.add(memory.id)
            nodes.append(node)
            frontier.append(node)
        layers_queried = 1
        logger.debug("Tree layer 1: %d roots at %.2f", len(frontier), schedule[0])

        semaphore = asyncio.Semaphore(max(1, self.fan_out))
        layer = 1
        while frontier and len(nodes) < budget and layer < len(schedule):
            threshold = schedule[layer]
            results = await asyncio.gather(
                *(
                    self._expand_seed(seed, threshold, visited, semaphore)
                    for seed in frontier
                )
            )
            layers_queried += 1
            accepted = self._accept(frontier, results, visited, budget - len(nodes))
            logger.debug(
                "Tree layer %d: %d seeds, %d accepted at %.2f",
                layer + 1,
                len(frontier),
                len(accepted),
                threshold,
            )
            if not accepted:
                break
            for node in accepted:
                visited.add(node.memory_id)
            nodes.extend(accepted)
            frontier = accepted
            layer += 1

        return ResultSet(
            query=options.query,
            mode="tree",
            candidates=nodes,
            thresholds=schedule.thresholds[:layers_queried],
        )

    def _shares_tag(self, seed: SearchCandidate, memory: Memory) -> bool:
        if not self.require_tag_overlap:
            return True
        return bool(set(seed.memory.tags).intersection(memory.tags))

    async def _expand_seed(
        self,
        seed: SearchCandidate,
        threshold: float,
        visited: set[str],
        semaphore: asyncio.Semaphore,
    ) -> list[ScoredMemory]:
        """Neighbours of ``seed`` above ``threshold``, with enough eligible ones to fill a branch.

        Visited ids and neighbours failing the tag gate take up room in the
        store's answer, so the window doubles until ``branch_limit`` eligible
        neighbours are in it or the store has nothing more above the threshold.
        """
        top_k = self.branch_limit + len(visited)
        async with semaphore:
            while True:
                hits = await self.store.query(seed.memory.embedding, top_k, min_score=threshold)
                eligible = sum(
                    1
                    for memory, _ in hits
                    if memory.id not in visited and self._shares_tag(seed, memory)
                )
                if eligible >= self.branch_limit or len(hits) < top_k:
                    return hits
                top_k *= 2

    def _accept(
        self,
        frontier: list[SearchCandidate],
        results: list[list[ScoredMemory]],
        visited: set[str],
        remaining: int,
    ) -> list[SearchCandidate]:
        """Pick the next layer: best score first, each id to the seed that scored it highest."""
        proposals: dict[str, _Proposal] = {}
        for index, (seed, hits) in enumerate(zip(frontier, results)):
            for memory, score in hits:
                if memory.id in visited or not self._shares_tag(seed, memory):
                    continue
                current = proposals.get(memory.id)
                if current is None or score > current.score:
                    proposals[memory.id] = _Proposal(memory, score, seed, index)

        ordered = sorted(proposals.values(), key=lambda p: (-p.score, p.seed_index))
        per_seed: dict[int, int] = {}
        accepted: list[SearchCandidate] = []
        for proposal in ordered:
            if len(accepted) >= remaining:
                break
            if per_seed.get(proposal.seed_index, 0) >= self.branch_limit:
                continue
            per_seed[proposal.seed_index] = per_seed.get(proposal.seed_index, 0) + 1
            accepted.append(
                SearchCandidate(
                    memory=proposal.memory,
                    vector_score=proposal.score,
                    layer_index=proposal.seed.layer_index + 1,
                    parent_id=proposal.seed.memory_id,
                )
            )
        return accepted

    # ── Post-filters ──────────────────────────────────────────

    @staticmethod
    def _post_filter(
        candidates: list[SearchCandidate], options: SearchOptions
    ) -> list[SearchCandidate]:
        if options.time_range is not None:
            candidates = [
                c for c in candidates if options.time_range.contains(c.memory.updated_at)
            ]
        if options.tags:
            wanted = set(options.tags)
            candidates = [c for c in candidates if wanted.intersection(c.memory.tags)]
        if options.mode == "flat":
            candidates = candidates[: max(options.limit, options.candidate_limit or 0)]
        return candidates
