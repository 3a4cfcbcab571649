"""LanceDB-backed vector store.

One table holds every row. LanceDB's Python API is synchronous, so each call is
pushed to a worker thread with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Sequence

import lancedb
import numpy as np
import pyarrow as pa

from memo.errors import DimensionMismatch, StoreIOError
from memo.models import Memory, from_millis
from memo.store.base import ScoredMemory, check_dimension, clamp_score, newest_per_id

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "memories"


def memory_schema(dimension: int) -> pa.Schema:
    return pa.schema(
        [
            pa.field("id", pa.string(), nullable=False),
            pa.field("title", pa.string()),
            pa.field("summary", pa.string()),
            pa.field("content", pa.string(), nullable=False),
            pa.field("tags", pa.list_(pa.string())),
            pa.field("vector", pa.list_(pa.float32(), list_size=dimension)),
            pa.field("source_file", pa.string()),
            pa.field("created_at", pa.timestamp("ms", tz="UTC"), nullable=False),
            pa.field("updated_at", pa.timestamp("ms", tz="UTC"), nullable=False),
            pa.field("version", pa.int64(), nullable=False),
        ]
    )


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    return float(va @ vb) / norm if norm else 0.0


class LanceVectorStore:
    """Vector store persisted in a LanceDB directory (the "brain")."""

    def __init__(self, path: Path | str, dimension: int, table: str = DEFAULT_TABLE) -> None:
        self.path = Path(path).expanduser()
        self._dimension = dimension
        self._table_name = table
        self._schema = memory_schema(dimension)
        self._table = None

    @property
    def dimension(self) -> int:
        return self._dimension

    # ── Table lifecycle ───────────────────────────────────────

    def _open(self):
        if self._table is not None:
            return self._table
        self.path.mkdir(parents=True, exist_ok=True)
        conn = lancedb.connect(str(self.path))
        try:
            table = conn.open_table(self._table_name)
        except (ValueError, FileNotFoundError):
            # Missing table.
            logger.info("Creating table %s in %s (dim=%d)", self._table_name, self.path, self._dimension)
            table = conn.create_table(self._table_name, schema=self._schema)
        else:
            width = table.schema.field("vector").type.list_size
            if width != self._dimension:
                raise DimensionMismatch(self._dimension, width, f"table {self._table_name}")
        self._table = table
        return table

    async def _run(self, action: str, fn, *args):
        def call():
            return fn(self._open(), *args)

        try:
            return await asyncio.to_thread(call)
        except (DimensionMismatch, StoreIOError):
            raise
        except Exception as e:
            raise StoreIOError(f"LanceDB {action} failed: {e}", path=str(self.path)) from e

    # ── Row conversion ────────────────────────────────────────

    def _to_row(self, memory: Memory) -> dict[str, Any]:
        check_dimension(memory.embedding, self._dimension, f"insert {memory.id}")
        return {
            "id": memory.id,
            "title": memory.title,
            "summary": memory.summary,
            "content": memory.content,
            "tags": list(memory.tags),
            "vector": [float(x) for x in memory.embedding],
            "source_file": memory.source_file,
            "created_at": memory.created_at,
            "updated_at": memory.updated_at,
            "version": memory.version,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> Memory:
        created = row["created_at"]
        updated = row["updated_at"]
        if isinstance(created, int):
            created = from_millis(created)
        if isinstance(updated, int):
            updated = from_millis(updated)
        return Memory(
            id=row["id"],
            content=row["content"],
            embedding=[float(x) for x in row["vector"]],
            tags=list(row.get("tags") or []),
            title=row.get("title") or "",
            summary=row.get("summary") or "",
            source_file=row.get("source_file"),
            created_at=created,
            updated_at=updated,
        )

    # ── VectorStore ───────────────────────────────────────────

    async def insert(self, memory: Memory) -> None:
        await self.insert_batch([memory])

    async def insert_batch(self, memories: Sequence[Memory]) -> None:
        if not memories:
            return
        rows = [self._to_row(m) for m in memories]
        data = pa.Table.from_pylist(rows, schema=self._schema)
        await self._run("insert", lambda table: table.add(data))
        logger.debug("Inserted %d rows", len(rows))

    async def delete(self, memory_id: str, version: int | None = None) -> int:
        predicate = f"id = {_quote(memory_id)}"
        if version is not None:
            predicate += f" AND version = {int(version)}"

        def do_delete(table) -> int:
            matched = table.count_rows(predicate)
            if matched:
                table.delete(predicate)
            return matched

        return await self._run("delete", do_delete)

    async def get(self, memory_id: str) -> Memory | None:
        predicate = f"id = {_quote(memory_id)}"
        rows = await self._run(
            "get",
            lambda table: table.search().where(predicate).limit(100).to_arrow().to_pylist(),
        )
        if not rows:
            return None
        newest = max(rows, key=lambda r: r["version"])
        return self._from_row(newest)

    async def scan(self) -> list[Memory]:
        rows = await self._run("scan", lambda table: table.to_arrow().to_pylist())
        memories = newest_per_id([self._from_row(r) for r in rows])
        memories.sort(key=lambda m: m.updated_at, reverse=True)
        return memories

    async def count(self) -> int:
        rows = await self._run(
            "count", lambda table: table.to_arrow().select(["id"]).to_pylist()
        )
        return len({r["id"] for r in rows})

    async def clear(self) -> None:
        await self._run("clear", lambda table: table.delete("true"))
        logger.info("Cleared table %s", self._table_name)

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        min_score: float | None = None,
    ) -> list[ScoredMemory]:
        check_dimension(vector, self._dimension, "query")
        if top_k <= 0:
            return []
        q = [float(x) for x in vector]

        def search(table) -> tuple[list[dict], list[dict]]:
            hits = (
                table.search(q, vector_column_name="vector")
                .distance_type("cosine")
                .limit(top_k)
                .to_list()
            )
            if not hits:
                return hits, []
            # Every stored row of the returned ids, so a stale hit can be swapped
            # for the live version even when that version ranked outside top_k.
            predicate = "id IN (" + ", ".join(_quote(i) for i in {r["id"] for r in hits}) + ")"
            total = max(1, table.count_rows(predicate))
            versions = table.search().where(predicate).limit(total).to_arrow().to_pylist()
            return hits, versions

        hits, versions = await self._run("query", search)

        live: dict[str, dict] = {}
        for row in versions:
            current = live.get(row["id"])
            if current is None or row["version"] > current["version"]:
                live[row["id"]] = row

        best: dict[str, tuple[dict, float]] = {}
        for row in hits:
            newest = live.get(row["id"], row)
            if row["version"] != newest["version"] or row["id"] in best:
                continue
            best[row["id"]] = (row, clamp_score(1.0 - float(row.get("_distance") or 0.0)))
        for memory_id, row in live.items():
            if memory_id not in best:
                best[memory_id] = (row, clamp_score(_cosine(q, row["vector"])))

        scored = [(self._from_row(row), score) for row, score in best.values()]
        if min_score is not None:
            scored = [item for item in scored if item[1] >= min_score]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:top_k]
