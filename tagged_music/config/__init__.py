"""
Configuration management for Tagged Music.

This module loads the store configuration (which backend to use and how to
reach it) from TOML files, with a couple of environment overrides for
deployments.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from tagged_music.core import ConfigError

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

ENV_BACKEND = "TAGGED_MUSIC_BACKEND"
ENV_DB_PATH = "TAGGED_MUSIC_DB_PATH"


class Backend(Enum):
    """Available library source backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass
class DevelopmentConfig:
    """Development user created in a fresh in-memory store."""

    seed_user: bool = True
    user_id: int = 1
    username: str = "username"
    pass_hash: str = "password-hash"
    default_color: int = 0


@dataclass
class StoreConfig:
    """Loaded store configuration."""

    backend: Backend = Backend.MEMORY
    db_path: Path = Path("tagged_music.db")
    timeout: float = 5.0
    development: DevelopmentConfig = field(default_factory=DevelopmentConfig)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ConfigError(f"store.timeout must be > 0, got {self.timeout}")

    @property
    def is_development(self) -> bool:
        return self.backend is Backend.MEMORY


def parse_backend(value: str) -> Backend:
    """Parse a backend name (case-insensitive)."""
    try:
        return Backend(value.strip().lower())
    except ValueError:
        names = ", ".join(b.value for b in Backend)
        raise ConfigError(f"Unknown store backend {value!r} (expected one of: {names})") from None


def _parse_development(data: Mapping[str, Any]) -> DevelopmentConfig:
    defaults = DevelopmentConfig()
    return DevelopmentConfig(
        seed_user=bool(data.get("seed_user", defaults.seed_user)),
        user_id=int(data.get("user_id", defaults.user_id)),
        username=str(data.get("username", defaults.username)),
        pass_hash=str(data.get("pass_hash", defaults.pass_hash)),
        default_color=int(data.get("default_color", defaults.default_color)),
    )


def parse_store_config(
    data: Mapping[str, Any], *, environ: Mapping[str, str] | None = None
) -> StoreConfig:
    """
    Build a StoreConfig from already-parsed TOML data.

    Args:
        data: The TOML document as a mapping.
        environ: Environment used for overrides (defaults to os.environ).

    Returns:
        The StoreConfig instance.
    """
    env = os.environ if environ is None else environ
    store = data.get("store", {})

    backend_name = env.get(ENV_BACKEND) or str(store.get("backend", Backend.MEMORY.value))
    db_path = env.get(ENV_DB_PATH) or str(store.get("db_path", "tagged_music.db"))
    if not db_path:
        raise ConfigError("store.db_path must not be empty")

    try:
        timeout = float(store.get("timeout", 5.0))
    except (TypeError, ValueError):
        raise ConfigError(f"store.timeout must be a number, got {store.get('timeout')!r}") from None

    return StoreConfig(
        backend=parse_backend(backend_name),
        db_path=Path(db_path),
        timeout=timeout,
        development=_parse_development(data.get("development", {})),
    )


def load_store_config(config_path: Path | None = None) -> StoreConfig:
    """
    Load store configuration from a TOML file.

    Args:
        config_path: Path to the TOML file. If None, uses the bundled store.toml.

    Returns:
        Loaded StoreConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "store.toml"

    logger.debug("Loading store config from %s", config_path)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {config_path}") from None
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    return parse_store_config(data)


# Global singleton instance (lazy loaded)
_store_config: StoreConfig | None = None


def get_store_config() -> StoreConfig:
    """
    Get the global store configuration (lazy loaded singleton).

    Returns:
        The StoreConfig instance.
    """
    global _store_config

    if _store_config is None:
        _store_config = load_store_config()

    return _store_config


def reload_store_config(config_path: Path | None = None) -> StoreConfig:
    """
    Force reload of store configuration.

    Returns:
        The newly loaded StoreConfig instance.
    """
    global _store_config
    _store_config = load_store_config(config_path)
    return _store_config
