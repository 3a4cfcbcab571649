"""Tests for the typer command line, running against in-memory fakes."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

import memo.cli as cli
from conftest import QUERY_VEC, make_memory, vec
from memo.service import MemoService

runner = CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    for key in ("MEMO_BRAIN_PATH", "MEMO_LOG_LEVEL", "MEMO_EMBEDDING_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    return work


@pytest.fixture
def seeded(store):
    """Synchronously pre-fill the store through its private rows."""

    def seed(*memories):
        store._rows.extend(memories)

    return seed


@pytest.fixture(autouse=True)
def fake_service(monkeypatch, workdir, store, embedder):
    embedder.vectors["q"] = QUERY_VEC
    monkeypatch.setattr(
        cli,
        "build_service",
        lambda config: MemoService(config, store=store, embedder=embedder),
    )


class TestInit:
    def test_init_local(self, workdir: Path):
        result = runner.invoke(cli.app, ["init", "--local"])
        assert result.exit_code == 0
        assert (workdir / ".memo" / "config.toml").exists()
        assert "Initialized" in result.output

    def test_conflicting_scopes(self):
        result = runner.invoke(cli.app, ["init", "--local", "--global"])
        assert result.exit_code == 1
        assert "cannot be used together" in result.output


class TestEmbed:
    def test_embed_text(self, store):
        result = runner.invoke(cli.app, ["embed", "remember to rotate keys", "--tags", "ops"])
        assert result.exit_code == 0, result.output
        assert "Finished" in result.output
        assert len(store._rows) == 1
        assert store._rows[0].tags == ["ops"]

    def test_duplicate_exits_with_suggestions(self, store, embedder, seeded):
        seeded(make_memory("existing", vec(0.95), memory_id="m-1"))
        embedder.vectors["new note"] = QUERY_VEC
        result = runner.invoke(cli.app, ["embed", "new note"])
        assert result.exit_code == 1
        assert "similar memories" in result.output
        assert "--force" in result.output
        assert len(store._rows) == 1

    def test_force(self, store, embedder, seeded):
        seeded(make_memory("existing", vec(0.95), memory_id="m-1"))
        embedder.vectors["new note"] = QUERY_VEC
        result = runner.invoke(cli.app, ["embed", "new note", "--force"])
        assert result.exit_code == 0, result.output
        assert len(store._rows) == 2


class TestSearch:
    def test_flat(self, seeded):
        seeded(make_memory("rotate keys monthly", vec(0.95), memory_id="m-1"))
        result = runner.invoke(cli.app, ["search", "q"])
        assert result.exit_code == 0, result.output
        assert "V:0.95" in result.output
        assert "rotate keys monthly" in result.output

    def test_tree_prints_stats(self, seeded):
        seeded(
            make_memory("A", [0.6, 0.8, 0.0], ["x"], memory_id="A"),
            make_memory("B", [0.0, 1.0, 0.0], ["x"], memory_id="B"),
        )
        result = runner.invoke(cli.app, ["search", "q", "--tree", "-t", "0.35"])
        assert result.exit_code == 0, result.output
        assert "2 nodes" in result.output

    def test_no_results(self):
        result = runner.invoke(cli.app, ["search", "q"])
        assert result.exit_code == 0
        assert "No matching memories" in result.output

    def test_bad_date(self):
        result = runner.invoke(cli.app, ["search", "q", "--after", "yesterday"])
        assert result.exit_code == 1
        assert "Invalid date format" in result.output


class TestMaintenanceCommands:
    def test_list(self, seeded):
        seeded(make_memory("a", vec(0.9)), make_memory("b", vec(0.8)))
        result = runner.invoke(cli.app, ["-v", "list"])
        assert result.exit_code == 0, result.output
        assert "Memories (2)" in result.output

    def test_update(self, store, seeded):
        seeded(make_memory("old", vec(0.9), memory_id="m-1"))
        result = runner.invoke(cli.app, ["update", "m-1", "--content", "new"])
        assert result.exit_code == 0, result.output
        assert [r.content for r in store._rows] == ["new"]

    def test_update_missing(self):
        result = runner.invoke(cli.app, ["update", "nope", "-c", "x"])
        assert result.exit_code == 1
        assert "Memory not found" in result.output

    def test_merge(self, store, seeded):
        seeded(make_memory("a", vec(0.9), memory_id="m-1"), make_memory("b", vec(0.8), memory_id="m-2"))
        result = runner.invoke(cli.app, ["merge", "m-1", "m-2", "-c", "ab"])
        assert result.exit_code == 0, result.output
        assert [r.content for r in store._rows] == ["ab"]

    def test_delete_confirmed_by_flag(self, store, seeded):
        seeded(make_memory("a", vec(0.9), memory_id="m-1"))
        result = runner.invoke(cli.app, ["delete", "m-1", "--force"])
        assert result.exit_code == 0, result.output
        assert store._rows == []

    def test_delete_declined(self, store, seeded):
        seeded(make_memory("a", vec(0.9), memory_id="m-1"))
        result = runner.invoke(cli.app, ["delete", "m-1"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert len(store._rows) == 1

    def test_clear(self, store, seeded):
        seeded(make_memory("a", vec(0.9)), make_memory("b", vec(0.8)))
        result = runner.invoke(cli.app, ["clear", "--force"])
        assert result.exit_code == 0, result.output
        assert "2 memories" in result.output
        assert store._rows == []
