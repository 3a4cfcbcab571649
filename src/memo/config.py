"""Configuration loading from environment variables and config.toml.

Two scopes exist: the global workspace ``~/.memo/`` and a per-project
workspace ``./.memo/``. Each holds a ``config.toml`` and a ``brain/``
directory with the vector store.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Literal

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from memo.errors import ConfigError
from memo.gateways.embedding import ZHIPU_BASE_URL, infer_dimension, infer_provider

logger = logging.getLogger(__name__)

_DIR_NAME = ".memo"
_CONFIG_FILENAME = "config.toml"
_BRAIN_DIR = "brain"

Scope = Literal["global", "local", "default"]

CONFIG_TEMPLATE = """\
# memo configuration
#
# Environment variables (MEMO_*) take precedence over this file.

# Where the vector store lives. Local workspaces always use ./.memo/brain.
# brain_path = "~/.memo/brain"
# log_level = "WARNING"

[embedding]
# provider = "zhipu"        # zhipu | openai | ollama (inferred from base_url when unset)
# base_url = "https://open.bigmodel.cn/api/paas/v4"
api_key = ""
model = "embedding-3"
# dimension = 2048          # inferred from the model name when unset

[rerank]
# Reranking is skipped when no api_key is set.
# base_url = "https://open.bigmodel.cn/api/paas/v4"
api_key = ""
model = "rerank"

[search]
limit = 5
threshold = 0.3
duplicate_threshold = 0.85
branch_limit = 3
max_depth = 5
fan_out = 4
require_tag_overlap = true
"""


def global_dir() -> Path:
    return Path.home() / _DIR_NAME


def local_dir() -> Path:
    return Path.cwd() / _DIR_NAME


@dataclass
class EmbeddingConfig:
    """Embedding provider settings."""

    provider: str | None = None
    base_url: str | None = None
    api_key: str = ""
    model: str = "embedding-3"
    dimension: int | None = None

    @property
    def resolved_provider(self) -> str:
        return infer_provider(self.provider, self.base_url)

    @property
    def resolved_dimension(self) -> int:
        return self.dimension or infer_dimension(self.model)


@dataclass
class RerankConfig:
    """Rerank provider settings. Without an API key reranking is off."""

    base_url: str = ZHIPU_BASE_URL
    api_key: str = ""
    model: str = "rerank"

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class SearchConfig:
    """Search and duplicate-guard tuning."""

    limit: int = 5
    threshold: float = 0.3
    duplicate_threshold: float = 0.85
    branch_limit: int = 3
    max_depth: int = 5
    fan_out: int = 4
    require_tag_overlap: bool = True


@dataclass
class MemoConfig:
    """Top-level memo configuration."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    brain_path: Path = field(default_factory=lambda: global_dir() / _BRAIN_DIR)
    log_level: str = "WARNING"
    scope: Scope = "default"
    config_path: Path | None = None

    def validate_api_keys(self) -> None:
        """Embedding needs a key unless it runs on Ollama; rerank is optional."""
        if self.embedding.resolved_provider != "ollama" and not self.embedding.api_key:
            raise ConfigError(
                "Embedding API key is not configured. Set [embedding].api_key in "
                "config.toml or MEMO_EMBEDDING_API_KEY.",
                scope=self.scope,
            )


def resolve_config_path(local: bool = False, global_: bool = False) -> tuple[Scope, Path | None]:
    """Pick the config file for this invocation.

    ``--local`` and ``--global`` force a scope. Otherwise a local workspace wins
    when present (and the current directory is not the home directory), then
    the global one, then built-in defaults.
    """
    if local and global_:
        raise ConfigError("--local and --global cannot be used together")
    if local:
        return "local", local_dir() / _CONFIG_FILENAME
    if global_:
        return "global", global_dir() / _CONFIG_FILENAME

    local_path = local_dir() / _CONFIG_FILENAME
    if local_path.exists() and Path.cwd().resolve() != Path.home().resolve():
        return "local", local_path
    global_path = global_dir() / _CONFIG_FILENAME
    if global_path.exists():
        return "global", global_path
    return "default", None


def _read_toml(path: Path) -> dict:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config file: {e}", path=str(path)) from e


def _optional_int(value) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


def load_config(
    config_path: Path | None = None,
    *,
    local: bool = False,
    global_: bool = False,
) -> MemoConfig:
    """Load configuration from environment variables and config.toml.

    Priority: environment variables > config.toml > defaults.
    """
    if config_path is not None:
        scope: Scope = "global"
        path: Path | None = config_path
    else:
        scope, path = resolve_config_path(local, global_)

    file_data: dict = {}
    if path is not None and path.exists():
        file_data = _read_toml(path)
        logger.debug("Loaded config from %s", path)

    embedding_data = file_data.get("embedding", {})
    rerank_data = file_data.get("rerank", {})
    search_data = file_data.get("search", {})

    if scope == "local":
        brain_path = local_dir() / _BRAIN_DIR
    else:
        brain_path = Path(
            os.getenv("MEMO_BRAIN_PATH", file_data.get("brain_path", str(global_dir() / _BRAIN_DIR)))
        ).expanduser()

    try:
        config = MemoConfig(
            embedding=EmbeddingConfig(
                provider=os.getenv("MEMO_EMBEDDING_PROVIDER", embedding_data.get("provider")),
                base_url=os.getenv("MEMO_EMBEDDING_BASE_URL", embedding_data.get("base_url")),
                api_key=os.getenv("MEMO_EMBEDDING_API_KEY", embedding_data.get("api_key", "")),
                model=os.getenv("MEMO_EMBEDDING_MODEL", embedding_data.get("model", "embedding-3")),
                dimension=_optional_int(
                    os.getenv("MEMO_EMBEDDING_DIMENSION", embedding_data.get("dimension"))
                ),
            ),
            rerank=RerankConfig(
                base_url=os.getenv(
                    "MEMO_RERANK_BASE_URL", rerank_data.get("base_url", ZHIPU_BASE_URL)
                ),
                api_key=os.getenv("MEMO_RERANK_API_KEY", rerank_data.get("api_key", "")),
                model=os.getenv("MEMO_RERANK_MODEL", rerank_data.get("model", "rerank")),
            ),
            search=SearchConfig(
                limit=int(search_data.get("limit", 5)),
                threshold=float(search_data.get("threshold", 0.3)),
                duplicate_threshold=float(search_data.get("duplicate_threshold", 0.85)),
                branch_limit=int(search_data.get("branch_limit", 3)),
                max_depth=int(search_data.get("max_depth", 5)),
                fan_out=int(search_data.get("fan_out", 4)),
                require_tag_overlap=bool(search_data.get("require_tag_overlap", True)),
            ),
            brain_path=brain_path,
            log_level=os.getenv("MEMO_LOG_LEVEL", file_data.get("log_level", "WARNING")),
            scope=scope,
            config_path=path,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}", path=str(path)) from e
    return config


def init_workspace(local: bool = False) -> Path:
    """Create the workspace directory, a default config.toml and the brain directory.

    Idempotent: an existing config.toml is never overwritten.
    """
    root = local_dir() if local else global_dir()
    root.mkdir(parents=True, exist_ok=True)
    config_file = root / _CONFIG_FILENAME
    if not config_file.exists():
        config_file.write_text(CONFIG_TEMPLATE, encoding="utf-8")
        logger.info("Wrote default config to %s", config_file)
    (root / _BRAIN_DIR).mkdir(parents=True, exist_ok=True)
    return root


def ensure_initialized(config: MemoConfig) -> None:
    """Auto-initialize the global workspace the first time a store is needed."""
    if config.scope == "default":
        init_workspace(local=False)
    config.brain_path.mkdir(parents=True, exist_ok=True)
