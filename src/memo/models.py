"""Data model: stored memories and the transient values of one operation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

from memo.errors import ValidationError

TITLE_MAX_CHARS = 80
SUMMARY_MAX_CHARS = 160
EXCERPT_MAX_CHARS = 200

SearchMode = Literal["flat", "tree"]


def utcnow() -> datetime:
    """Current UTC time truncated to millisecond precision (the storage resolution)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def normalize_text(text: str) -> str:
    """Collapse whitespace runs so equivalent texts embed identically."""
    return " ".join(text.split())


def normalize_tags(tags: list[str] | tuple[str, ...] | set[str] | None) -> list[str]:
    """Drop blanks and duplicates, keeping the first occurrence of each tag."""
    seen: list[str] = []
    for tag in tags or []:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def union_tags(*groups: list[str]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        merged.extend(group)
    return normalize_tags(merged)


def _shorten(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def derive_title(content: str) -> str:
    for line in content.splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            return _shorten(line, TITLE_MAX_CHARS)
    return ""


def derive_summary(content: str) -> str:
    return _shorten(normalize_text(content), SUMMARY_MAX_CHARS)


@dataclass
class Memory:
    """One unit of stored knowledge. ``content`` is authoritative."""

    id: str
    content: str
    embedding: list[float]
    tags: list[str] = field(default_factory=list)
    title: str = ""
    summary: str = ""
    source_file: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.tags = normalize_tags(self.tags)
        if not self.title:
            self.title = derive_title(self.content)
        if not self.summary:
            self.summary = derive_summary(self.content)
        if self.updated_at < self.created_at:
            raise ValidationError(
                "updated_at must not precede created_at",
                memory_id=self.id,
            )

    @classmethod
    def create(
        cls,
        content: str,
        embedding: list[float],
        tags: list[str] | None = None,
        *,
        title: str = "",
        source_file: str | None = None,
    ) -> Memory:
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            content=content,
            embedding=list(embedding),
            tags=list(tags or []),
            title=title,
            source_file=source_file,
            created_at=now,
            updated_at=now,
        )

    @property
    def version(self) -> int:
        """Identifies one stored row of this logical memory."""
        return to_millis(self.updated_at)

    def next_update_time(self) -> datetime:
        """A timestamp strictly later than the current version."""
        return max(utcnow(), self.updated_at + timedelta(milliseconds=1))


# ── Search values ─────────────────────────────────────────────


@dataclass
class TimeRange:
    """Inclusive bounds on ``updated_at``; either side may be open."""

    after: datetime | None = None
    before: datetime | None = None

    @classmethod
    def parse(cls, after: str | None = None, before: str | None = None) -> TimeRange | None:
        if not after and not before:
            return None
        return cls(
            after=parse_datetime(after) if after else None,
            before=parse_datetime(before) if before else None,
        )

    def contains(self, moment: datetime) -> bool:
        if self.after and moment < self.after:
            return False
        if self.before and moment > self.before:
            return False
        return True


def parse_datetime(value: str) -> datetime:
    """Parse ``YYYY-MM-DD`` or ``YYYY-MM-DD HH:MM`` as UTC."""
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValidationError(
        "Invalid date format. Use YYYY-MM-DD or YYYY-MM-DD HH:MM",
        value=value,
    )


@dataclass
class SearchOptions:
    """All parameters of one search call."""

    query: str
    mode: SearchMode = "flat"
    limit: int = 5
    threshold: float = 0.3
    time_range: TimeRange | None = None
    tags: list[str] = field(default_factory=list)
    candidate_limit: int | None = None

    def validate(self) -> None:
        if not self.query.strip():
            raise ValidationError("Search query must not be empty")
        if self.mode not in ("flat", "tree"):
            raise ValidationError(f"Unknown search mode: {self.mode}", mode=self.mode)
        if self.limit < 1:
            raise ValidationError("limit must be at least 1", limit=self.limit)
        check_threshold(self.threshold)

    @property
    def pool_size(self) -> int:
        pool = max(self.limit, self.candidate_limit or 0)
        if self.time_range is not None:
            pool *= 10
        return pool


def check_threshold(threshold: float, name: str = "threshold") -> None:
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(f"{name} must be within [0, 1]", **{name: threshold})


@dataclass
class SearchCandidate:
    """A memory reached during one search, with how it was reached."""

    memory: Memory
    vector_score: float
    rerank_score: float | None = None
    layer_index: int = 1
    parent_id: str | None = None

    @property
    def memory_id(self) -> str:
        return self.memory.id

    @property
    def display_score(self) -> float:
        return self.rerank_score if self.rerank_score is not None else self.vector_score

    @property
    def provenance(self) -> str:
        return "R" if self.rerank_score is not None else "V"


@dataclass
class ResultSet:
    """Output of one search call: a flat ranking or a forest with parent links."""

    query: str
    mode: SearchMode
    candidates: list[SearchCandidate] = field(default_factory=list)
    thresholds: list[float] = field(default_factory=list)
    reranked: bool = False

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    @property
    def ids(self) -> list[str]:
        return [c.memory_id for c in self.candidates]

    @property
    def layer_count(self) -> int:
        return max((c.layer_index for c in self.candidates), default=0)

    def roots(self) -> list[SearchCandidate]:
        """Nodes without a parent in this result (orphans of post-filtering included)."""
        present = set(self.ids)
        return [
            c for c in self.candidates if c.parent_id is None or c.parent_id not in present
        ]

    def children_of(self, memory_id: str) -> list[SearchCandidate]:
        return [c for c in self.candidates if c.parent_id == memory_id]


# ── Duplicate guard values ────────────────────────────────────


@dataclass
class DuplicateMatch:
    """An existing memory that looks like the content about to be stored."""

    id: str
    title: str
    excerpt: str
    tags: list[str]
    created_at: datetime
    updated_at: datetime
    score: float

    @classmethod
    def from_memory(cls, memory: Memory, score: float) -> DuplicateMatch:
        return cls(
            id=memory.id,
            title=memory.title,
            excerpt=_shorten(memory.content, EXCERPT_MAX_CHARS),
            tags=list(memory.tags),
            created_at=memory.created_at,
            updated_at=memory.updated_at,
            score=score,
        )


@dataclass
class NoDuplicate:
    found = False


@dataclass
class DuplicatesFound:
    matches: list[DuplicateMatch]
    found = True


DuplicateCheck = NoDuplicate | DuplicatesFound


# ── Consistency results ───────────────────────────────────────


@dataclass
class UpdateResult:
    memory: Memory
    previous: Memory
    stale_version_kept: bool = False


@dataclass
class MergeResult:
    memory: Memory
    source_ids: list[str]
    failed_deletes: list[str] = field(default_factory=list)
