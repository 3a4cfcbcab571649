"""Clients for the embedding and rerank model APIs."""

from memo.gateways.base import Embedder, Reranker
from memo.gateways.embedding import HTTPEmbedder, infer_dimension, infer_provider
from memo.gateways.rerank import HTTPReranker

__all__ = [
    "Embedder",
    "HTTPEmbedder",
    "HTTPReranker",
    "Reranker",
    "infer_dimension",
    "infer_provider",
]
