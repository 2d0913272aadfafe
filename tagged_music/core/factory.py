"""
Backend selection.

A process picks one library source at startup from its `StoreConfig` and keeps
it for its whole lifetime; backends are never mixed at runtime.
"""

from __future__ import annotations

import logging

from tagged_music.config import Backend, StoreConfig
from tagged_music.core import ConfigError
from tagged_music.core.memory import InMemoryLibrarySource
from tagged_music.core.models import TagType, User
from tagged_music.core.source import LibrarySource
from tagged_music.core.sqlite_source import SqliteLibrarySource

logger = logging.getLogger(__name__)


def create_library_source(config: StoreConfig) -> LibrarySource:
    """Create (but do not open) the library source selected by `config`."""
    if config.backend is Backend.MEMORY:
        logger.warning("Using the in-memory library source; data is lost on exit")
        return InMemoryLibrarySource()
    if config.backend is Backend.SQLITE:
        logger.info("Using the SQLite library source at %s", config.db_path)
        return SqliteLibrarySource(config.db_path, timeout=config.timeout)
    raise ConfigError(f"Unsupported backend: {config.backend}")


async def open_library_source(config: StoreConfig) -> LibrarySource:
    """
    Create and open the configured library source.

    A fresh in-memory source gets the development user from `config.development`
    so that a development process is usable right away.
    """
    source = create_library_source(config)
    await source.open()

    dev = config.development
    if config.is_development and dev.seed_user:
        response = await source.add_user(
            User(dev.user_id, dev.username, dev.pass_hash), TagType(dev.default_color)
        )
        if not response.ok:
            await source.close()
            raise ConfigError(
                f"Could not seed development user {dev.username!r}: {response.status.name}"
            )
        logger.info("Seeded development user %d (%s)", dev.user_id, dev.username)

    return source
