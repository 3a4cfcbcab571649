"""memo: long-term memory with layered semantic search."""

from memo.models import Memory, ResultSet, SearchCandidate, SearchOptions, TimeRange
from memo.service import MemoService

__version__ = "0.1.0"

__all__ = [
    "Memory",
    "MemoService",
    "ResultSet",
    "SearchCandidate",
    "SearchOptions",
    "TimeRange",
]
