"""Configuration for the knowledge query service."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import yaml

from .normalizer import DEFAULT_DB_PATH


DEFAULT_CONFIG_PATH = Path(".aiknowsys/query.yaml")
DEFAULT_SNIPPET_RADIUS = 60


# ---------------------------------------------------------------------------
# KnowledgeConfig dataclass
# ---------------------------------------------------------------------------


@dataclass
class KnowledgeConfig:
    """Settings threaded through every query call."""

    db_path: str = DEFAULT_DB_PATH
    search_limit: int | None = None  # None returns every hit
    snippet_radius: int = DEFAULT_SNIPPET_RADIUS
    auto_locate: bool = True  # Walk up parent directories for the default db

    def to_dict(self) -> dict:
        """Serialize to dict for YAML storage."""
        return {
            "database": {
                "path": self.db_path,
                "auto_locate": self.auto_locate,
            },
            "search": {
                "limit": self.search_limit,
                "snippet_radius": self.snippet_radius,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> KnowledgeConfig:
        """Deserialize from dict.

        Raises:
            ValueError: If a numeric setting is not a positive integer.
        """
        database = data.get("database") or {}
        search = data.get("search") or {}

        config = cls(
            db_path=str(database.get("path", DEFAULT_DB_PATH)),
            auto_locate=bool(database.get("auto_locate", True)),
            search_limit=search.get("limit"),
            snippet_radius=search.get("snippet_radius", DEFAULT_SNIPPET_RADIUS),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Check numeric settings.

        Raises:
            ValueError: If a numeric setting is not a positive integer.
        """
        for name in ("search_limit", "snippet_radius"):
            value = getattr(self, name)
            if value is None and name == "search_limit":
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


def apply_env_overrides(config: KnowledgeConfig, environ: dict | None = None) -> KnowledgeConfig:
    """Apply environment variable overrides.

    Recognized variables:
        KNOWLEDGE_DB_PATH: Database location.
        KNOWLEDGE_SEARCH_LIMIT: Default search result limit.

    Args:
        config: Configuration to update in place.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The same config instance.

    Raises:
        ValueError: If KNOWLEDGE_SEARCH_LIMIT is not a positive integer.
    """
    env = os.environ if environ is None else environ

    if env.get("KNOWLEDGE_DB_PATH"):
        config.db_path = env["KNOWLEDGE_DB_PATH"]

    if env.get("KNOWLEDGE_SEARCH_LIMIT"):
        try:
            config.search_limit = int(env["KNOWLEDGE_SEARCH_LIMIT"])
        except ValueError:
            raise ValueError(
                f"KNOWLEDGE_SEARCH_LIMIT must be an integer, got {env['KNOWLEDGE_SEARCH_LIMIT']!r}"
            ) from None

    config.validate()
    return config


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for applications embedding the library.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ---------------------------------------------------------------------------
# ConfigManager
# ---------------------------------------------------------------------------


class ConfigManager:
    """Loads and saves KnowledgeConfig as YAML.

    A missing or empty file yields the defaults; writes are atomic.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """Initialize with path to the YAML file.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self._config_path = Path(config_path)

    @property
    def config_path(self) -> Path:
        """Return the configuration file path."""
        return self._config_path

    def load(self, environ: dict | None = None) -> KnowledgeConfig:
        """Load configuration from YAML, then apply environment overrides.

        Returns:
            KnowledgeConfig. Defaults if the file doesn't exist.
        """
        data = None
        if self._config_path.exists():
            with open(self._config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)

        config = KnowledgeConfig.from_dict(data) if data else KnowledgeConfig()
        return apply_env_overrides(config, environ)

    def save(self, config: KnowledgeConfig) -> None:
        """Save configuration using an atomic write (temp file + rename).

        Args:
            config: Configuration to persist.
        """
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self._config_path.parent,
            prefix=".query_",
            suffix=".yaml.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
            os.replace(temp_path, self._config_path)
        except Exception:
            # Clean up temp file on failure
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
