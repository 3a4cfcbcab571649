"""Vector store adapters."""

from memo.store.base import ScoredMemory, VectorStore
from memo.store.lance import LanceVectorStore
from memo.store.memory import InMemoryVectorStore

__all__ = ["InMemoryVectorStore", "LanceVectorStore", "ScoredMemory", "VectorStore"]
