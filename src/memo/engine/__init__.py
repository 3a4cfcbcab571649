"""Search and consistency engine."""

from memo.engine.consistency import ConsistencyOperations
from memo.engine.duplicates import DuplicateGuard
from memo.engine.ranker import ResultRanker, order_tree, should_rerank
from memo.engine.search import LayeredSearchEngine, ThresholdSchedule

__all__ = [
    "ConsistencyOperations",
    "DuplicateGuard",
    "LayeredSearchEngine",
    "ResultRanker",
    "ThresholdSchedule",
    "order_tree",
    "should_rerank",
]
