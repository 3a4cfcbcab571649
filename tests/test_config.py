"""Tests for configuration loading and workspace scopes."""

import pytest
from pathlib import Path

from memo.config import CONFIG_TEMPLATE, init_workspace, load_config, resolve_config_path
from memo.errors import ConfigError

ENV_KEYS = [
    "MEMO_BRAIN_PATH",
    "MEMO_LOG_LEVEL",
    "MEMO_EMBEDDING_PROVIDER",
    "MEMO_EMBEDDING_BASE_URL",
    "MEMO_EMBEDDING_API_KEY",
    "MEMO_EMBEDDING_MODEL",
    "MEMO_EMBEDDING_DIMENSION",
    "MEMO_RERANK_BASE_URL",
    "MEMO_RERANK_API_KEY",
    "MEMO_RERANK_MODEL",
]


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return home


class TestConfig:
    def test_defaults(self, home: Path):
        config = load_config()
        assert config.scope == "default"
        assert config.embedding.model == "embedding-3"
        assert config.embedding.resolved_dimension == 2048
        assert config.rerank.model == "rerank"
        assert not config.rerank.enabled
        assert config.search.limit == 5
        assert config.search.threshold == 0.3
        assert config.search.duplicate_threshold == 0.85
        assert config.search.branch_limit == 3
        assert config.search.require_tag_overlap is True
        assert config.brain_path == home / ".memo" / "brain"

    def test_env_override(self, home: Path, monkeypatch):
        monkeypatch.setenv("MEMO_EMBEDDING_MODEL", "text-embedding-3-small")
        monkeypatch.setenv("MEMO_EMBEDDING_DIMENSION", "512")
        monkeypatch.setenv("MEMO_RERANK_API_KEY", "rk")

        config = load_config()
        assert config.embedding.model == "text-embedding-3-small"
        assert config.embedding.resolved_dimension == 512
        assert config.rerank.enabled

    def test_toml_file(self, home: Path):
        toml_path = home / "custom.toml"
        toml_path.write_text("""
brain_path = "~/elsewhere"

[embedding]
base_url = "http://localhost:11434/api"
model = "nomic-embed-text"

[search]
limit = 8
threshold = 0.4
require_tag_overlap = false
""")
        config = load_config(toml_path)
        assert config.embedding.resolved_provider == "ollama"
        assert config.embedding.resolved_dimension == 768
        assert config.search.limit == 8
        assert config.search.threshold == 0.4
        assert config.search.require_tag_overlap is False
        assert config.brain_path == home / "elsewhere"

    def test_env_overrides_toml(self, home: Path, monkeypatch):
        monkeypatch.setenv("MEMO_EMBEDDING_MODEL", "embedding-2")
        toml_path = home / "custom.toml"
        toml_path.write_text('[embedding]\nmodel = "embedding-3"\n')
        config = load_config(toml_path)
        assert config.embedding.model == "embedding-2"  # env wins

    def test_invalid_toml(self, home: Path):
        toml_path = home / "bad.toml"
        toml_path.write_text("this is = = not toml")
        with pytest.raises(ConfigError):
            load_config(toml_path)

    def test_invalid_value(self, home: Path):
        toml_path = home / "bad.toml"
        toml_path.write_text('[search]\nlimit = "many"\n')
        with pytest.raises(ConfigError):
            load_config(toml_path)


class TestScopes:
    def test_global_when_initialized(self, home: Path):
        init_workspace(local=False)
        scope, path = resolve_config_path()
        assert scope == "global"
        assert path == home / ".memo" / "config.toml"

    def test_local_wins_and_uses_local_brain(self, home: Path, monkeypatch):
        init_workspace(local=False)
        init_workspace(local=True)
        monkeypatch.setenv("MEMO_BRAIN_PATH", "/ignored")
        config = load_config()
        assert config.scope == "local"
        assert config.brain_path == Path.cwd() / ".memo" / "brain"

    def test_home_directory_is_not_local(self, home: Path, monkeypatch):
        monkeypatch.chdir(home)
        init_workspace(local=True)
        scope, _ = resolve_config_path()
        assert scope == "global"

    def test_forced_scopes(self, home: Path):
        assert resolve_config_path(local=True)[0] == "local"
        assert resolve_config_path(global_=True)[0] == "global"

    def test_conflicting_flags(self, home: Path):
        with pytest.raises(ConfigError, match="cannot be used together"):
            load_config(local=True, global_=True)


class TestInitWorkspace:
    def test_creates_config_and_brain(self, home: Path):
        root = init_workspace(local=False)
        assert root == home / ".memo"
        assert (root / "config.toml").read_text() == CONFIG_TEMPLATE
        assert (root / "brain").is_dir()

    def test_idempotent_keeps_user_edits(self, home: Path):
        root = init_workspace(local=True)
        (root / "config.toml").write_text("log_level = 'DEBUG'\n")
        init_workspace(local=True)
        assert (root / "config.toml").read_text() == "log_level = 'DEBUG'\n"

    def test_template_is_valid_config(self, home: Path):
        root = init_workspace(local=False)
        config = load_config(root / "config.toml")
        assert config.search.duplicate_threshold == 0.85


class TestApiKeys:
    def test_missing_embedding_key(self, home: Path):
        with pytest.raises(ConfigError, match="API key"):
            load_config().validate_api_keys()

    def test_ollama_needs_no_key(self, home: Path, monkeypatch):
        monkeypatch.setenv("MEMO_EMBEDDING_PROVIDER", "ollama")
        load_config().validate_api_keys()

    def test_key_present(self, home: Path, monkeypatch):
        monkeypatch.setenv("MEMO_EMBEDDING_API_KEY", "k")
        load_config().validate_api_keys()
