"""Error taxonomy shared by the engine, adapters and CLI.

Every failure carries a machine-readable ``kind`` plus a ``context`` dict so
the CLI can render a useful message without parsing strings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from memo.models import DuplicateMatch


class MemoError(Exception):
    """Base class for all memo failures."""

    kind = "error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({details})"
        return self.message


class NotFound(MemoError):
    """No memory with the requested id."""

    kind = "not_found"

    def __init__(self, memory_id: str) -> None:
        super().__init__(f"Memory not found with ID: {memory_id}", memory_id=memory_id)
        self.memory_id = memory_id


class DimensionMismatch(MemoError):
    """Embedding length differs from the store's configured dimension."""

    kind = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, where: str = "") -> None:
        message = f"Embedding dimension {actual} does not match expected dimension {expected}"
        if where:
            message += f" [{where}]"
        super().__init__(message, expected=expected, actual=actual)
        self.expected = expected
        self.actual = actual


class EmbeddingGatewayError(MemoError):
    """Embedding provider failed (transport, auth, quota, bad payload)."""

    kind = "embedding_gateway"


class RerankGatewayError(MemoError):
    """Rerank provider failed."""

    kind = "rerank_gateway"


class StoreIOError(MemoError):
    """Vector store adapter failed."""

    kind = "store_io"


class ValidationError(MemoError):
    """Caller supplied invalid input."""

    kind = "validation"


class ConfigError(MemoError):
    """Configuration could not be loaded or is incomplete."""

    kind = "config"


class DuplicateDetected(MemoError):
    """Expected outcome of ``embed`` when similar memories already exist.

    Not a hard failure: carries the full ranked match list so the caller can
    decide to force-add, update, merge or delete.
    """

    kind = "duplicate"

    def __init__(self, matches: list[DuplicateMatch], threshold: float) -> None:
        super().__init__(
            f"Found {len(matches)} similar memories (threshold: {threshold:.2f})",
            count=len(matches),
        )
        self.matches = matches
        self.threshold = threshold
