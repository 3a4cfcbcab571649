"""HTTP rerank client (``POST {base}/rerank``)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import aiohttp

from memo.errors import RerankGatewayError

logger = logging.getLogger(__name__)

DEFAULT_RERANK_MODEL = "rerank"
RERANK_TIMEOUT = 60.0


class HTTPReranker:
    """Scores documents against a query with a hosted rerank model."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        model: str = DEFAULT_RERANK_MODEL,
        timeout: float = RERANK_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def rerank(
        self,
        query: str,
        documents: Sequence[str],
        top_n: int | None = None,
    ) -> list[tuple[int, float]]:
        if not documents:
            return []
        url = f"{self.base_url}/rerank"
        payload: dict[str, Any] = {
            "model": self.model,
            "query": query,
            "documents": list(documents),
        }
        if top_n is not None:
            payload["top_n"] = top_n
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise RerankGatewayError(
                            f"Rerank API error (HTTP {response.status}): {body[:500]}",
                            status=response.status,
                            url=url,
                        )
                    data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RerankGatewayError(f"Rerank request failed: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise RerankGatewayError("Rerank request timed out", url=url) from e

        try:
            results = [
                (int(item["index"]), float(item["relevance_score"]))
                for item in data["results"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise RerankGatewayError(f"Malformed rerank response: {e}", model=self.model) from e

        results.sort(key=lambda pair: pair[1], reverse=True)
        logger.debug("Reranked %d documents, %d scored", len(documents), len(results))
        return results
