"""Configuration management for the context-recall CLI.

Reads a TOML config file and provides a typed Config dataclass.
Default location: ``~/.config/context-recall/config.toml``.
Override with the ``CONTEXT_RECALL_CONFIG`` environment variable.

Example file::

    [openai]
    api_key = "sk-..."

    [store]
    provider = "sqlite"
    path = "~/.local/share/context-recall/memory.db"

    [embeddings]
    provider = "local"

    [engine]
    inclusion_threshold = 0.4
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_DEFAULT_CONFIG_DIR = Path("~/.config/context-recall").expanduser()
_DEFAULT_DB_PATH = "~/.local/share/context-recall/memory.db"


def _config_path() -> Path:
    env = os.environ.get("CONTEXT_RECALL_CONFIG")
    if env:
        return Path(env).expanduser()
    return _DEFAULT_CONFIG_DIR / "config.toml"


@dataclass
class Config:
    openai_api_key: str = ""

    # Store backend: "sqlite" (default, persistent) or "memory"
    store_provider: str = "sqlite"
    db_path: str = _DEFAULT_DB_PATH

    # Embeddings: "local" (no network) or "openai"
    embeddings_provider: str = "local"
    embeddings_model: str = ""

    # Passed through to EngineSettings
    engine: dict[str, Any] = field(default_factory=dict)

    @property
    def uses_openai(self) -> bool:
        return self.embeddings_provider == "openai"

    @property
    def is_persistent(self) -> bool:
        return self.store_provider == "sqlite"


def load_config() -> Config:
    """Load config from disk, falling back to defaults + env overrides."""
    path = _config_path()
    cfg = Config()

    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)
        openai_section = data.get("openai", {})
        store_section = data.get("store", {})
        embeddings_section = data.get("embeddings", {})

        cfg.openai_api_key = openai_section.get("api_key", cfg.openai_api_key)
        cfg.store_provider = store_section.get("provider", cfg.store_provider)
        cfg.db_path = store_section.get("path", cfg.db_path)
        cfg.embeddings_provider = embeddings_section.get(
            "provider", cfg.embeddings_provider
        )
        cfg.embeddings_model = embeddings_section.get("model", cfg.embeddings_model)
        cfg.engine = dict(data.get("engine", {}))

    # Environment variables always take precedence
    cfg.openai_api_key = os.environ.get("OPENAI_API_KEY", cfg.openai_api_key)
    cfg.store_provider = os.environ.get("CONTEXT_RECALL_STORE", cfg.store_provider)
    cfg.db_path = os.environ.get("CONTEXT_RECALL_DB", cfg.db_path)
    cfg.embeddings_provider = os.environ.get(
        "CONTEXT_RECALL_EMBEDDINGS", cfg.embeddings_provider
    )

    return cfg


def config_exists() -> bool:
    return _config_path().exists()


def config_path_display() -> str:
    return str(_config_path())
