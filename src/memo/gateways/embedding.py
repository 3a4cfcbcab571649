"""HTTP embedding client for OpenAI-compatible APIs and Ollama."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import aiohttp

from memo.errors import DimensionMismatch, EmbeddingGatewayError

logger = logging.getLogger(__name__)

ZHIPU_BASE_URL = "https://open.bigmodel.cn/api/paas/v4"
OPENAI_BASE_URL = "https://api.openai.com/v1"
OLLAMA_BASE_URL = "http://localhost:11434/api"

DEFAULT_TIMEOUT = 30.0

# Checked in order; first substring match wins.
_MODEL_DIMENSIONS: list[tuple[str, int]] = [
    ("text-embedding-3-large", 3072),
    ("text-embedding-3-small", 1536),
    ("text-embedding-ada", 1536),
    ("embedding-3", 2048),
    ("embedding-2", 1024),
    ("nomic", 768),
    ("jina-embeddings-v3", 1024),
]
_FALLBACK_DIMENSION = 2048


def infer_dimension(model: str) -> int:
    """Best guess at the output width of a known embedding model."""
    name = model.lower()
    for needle, dim in _MODEL_DIMENSIONS:
        if needle in name:
            return dim
    return _FALLBACK_DIMENSION


def infer_provider(provider: str | None, base_url: str | None) -> str:
    """Resolve ``ollama`` / ``openai`` / ``zhipu`` from explicit setting or URL."""
    if provider:
        return provider.lower()
    url = (base_url or "").lower()
    if "11434" in url or "ollama" in url:
        return "ollama"
    if "openai.com" in url:
        return "openai"
    return "zhipu"


def default_base_url(provider: str) -> str:
    return {
        "ollama": OLLAMA_BASE_URL,
        "openai": OPENAI_BASE_URL,
    }.get(provider, ZHIPU_BASE_URL)


class HTTPEmbedder:
    """Embedding gateway speaking either the OpenAI ``/embeddings`` or Ollama ``/embed`` API."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str = "",
        base_url: str | None = None,
        provider: str | None = None,
        dimension: int | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.provider = infer_provider(provider, base_url)
        self.base_url = (base_url or default_base_url(self.provider)).rstrip("/")
        self.model = model
        self.api_key = api_key
        self._dimension = dimension or infer_dimension(model)
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        if self.provider == "ollama":
            url = f"{self.base_url}/embed"
            payload: dict[str, Any] = {"model": self.model, "input": list(texts)}
        else:
            url = f"{self.base_url}/embeddings"
            payload = {"model": self.model, "input": list(texts)}

        data = await self._post(url, payload)
        vectors = self._parse(data)
        if len(vectors) != len(texts):
            raise EmbeddingGatewayError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}",
                model=self.model,
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise DimensionMismatch(self._dimension, len(vector), f"model {self.model}")
        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return vectors

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(url, json=payload, headers=self._headers()) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise EmbeddingGatewayError(
                            f"Embedding API error (HTTP {response.status}): {body[:500]}",
                            status=response.status,
                            url=url,
                        )
                    return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise EmbeddingGatewayError(f"Embedding request failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise EmbeddingGatewayError("Embedding request timed out", url=url) from e

    def _parse(self, data: dict[str, Any]) -> list[list[float]]:
        try:
            if self.provider == "ollama":
                return [[float(x) for x in vec] for vec in data["embeddings"]]
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            return [[float(x) for x in item["embedding"]] for item in items]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingGatewayError(
                f"Malformed embedding response: {e}", model=self.model
            ) from e
