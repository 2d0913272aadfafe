"""
Tests for tagged_music.config and backend selection.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from tagged_music import config as config_module
from tagged_music.config import (
    Backend,
    StoreConfig,
    get_store_config,
    load_store_config,
    parse_backend,
    parse_store_config,
    reload_store_config,
)
from tagged_music.core import ConfigError
from tagged_music.core.factory import create_library_source, open_library_source
from tagged_music.core.memory import InMemoryLibrarySource
from tagged_music.core.models import TagType, User
from tagged_music.core.sqlite_source import SqliteLibrarySource


class TestParseConfig:
    def test_defaults(self) -> None:
        config = parse_store_config({}, environ={})
        assert config.backend is Backend.MEMORY
        assert config.db_path == Path("tagged_music.db")
        assert config.timeout == 5.0
        assert config.development.seed_user is True
        assert config.is_development

    def test_store_section(self) -> None:
        config = parse_store_config(
            {"store": {"backend": "SQLite", "db_path": "/var/lib/tm.db", "timeout": 2}},
            environ={},
        )
        assert config.backend is Backend.SQLITE
        assert config.db_path == Path("/var/lib/tm.db")
        assert config.timeout == 2.0
        assert not config.is_development

    def test_environment_overrides(self) -> None:
        config = parse_store_config(
            {"store": {"backend": "memory", "db_path": "a.db"}},
            environ={"TAGGED_MUSIC_BACKEND": "sqlite", "TAGGED_MUSIC_DB_PATH": "b.db"},
        )
        assert config.backend is Backend.SQLITE
        assert config.db_path == Path("b.db")

    def test_development_section(self) -> None:
        config = parse_store_config(
            {"development": {"seed_user": False, "username": "dev", "default_color": 7}},
            environ={},
        )
        assert config.development.seed_user is False
        assert config.development.username == "dev"
        assert config.development.default_color == 7
        assert config.development.user_id == 1

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigError):
            parse_backend("mysql")

    def test_bad_timeout(self) -> None:
        with pytest.raises(ConfigError):
            parse_store_config({"store": {"timeout": "soon"}}, environ={})
        with pytest.raises(ConfigError):
            parse_store_config({"store": {"timeout": 0}}, environ={})


class TestLoadConfig:
    def test_bundled_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TAGGED_MUSIC_BACKEND", raising=False)
        monkeypatch.delenv("TAGGED_MUSIC_DB_PATH", raising=False)
        config = load_store_config()
        assert config.backend is Backend.MEMORY

    def test_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TAGGED_MUSIC_BACKEND", raising=False)
        monkeypatch.delenv("TAGGED_MUSIC_DB_PATH", raising=False)
        path = tmp_path / "store.toml"
        path.write_text('[store]\nbackend = "sqlite"\ndb_path = "x.db"\n')
        config = load_store_config(path)
        assert config.backend is Backend.SQLITE
        assert config.db_path == Path("x.db")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_store_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "store.toml"
        path.write_text("[store\nbackend = ")
        with pytest.raises(ConfigError):
            load_store_config(path)


class TestGlobalConfig:
    @pytest.fixture(autouse=True)
    def reset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TAGGED_MUSIC_BACKEND", raising=False)
        monkeypatch.delenv("TAGGED_MUSIC_DB_PATH", raising=False)
        monkeypatch.setattr(config_module, "_store_config", None)

    def test_loaded_once(self) -> None:
        config = get_store_config()
        assert config is get_store_config()
        assert config.backend is Backend.MEMORY

    def test_reload(self, tmp_path: Path) -> None:
        first = get_store_config()
        path = tmp_path / "store.toml"
        path.write_text('[store]\nbackend = "sqlite"\n')

        reloaded = reload_store_config(path)
        assert reloaded is not first
        assert reloaded.backend is Backend.SQLITE
        assert get_store_config() is reloaded

    def test_failed_reload_keeps_current_config(self, tmp_path: Path) -> None:
        current = get_store_config()
        with pytest.raises(ConfigError):
            reload_store_config(tmp_path / "missing.toml")
        assert get_store_config() is current


class TestFactory:
    def test_create_memory(self) -> None:
        assert isinstance(create_library_source(StoreConfig()), InMemoryLibrarySource)

    def test_create_sqlite(self, tmp_path: Path) -> None:
        config = StoreConfig(backend=Backend.SQLITE, db_path=tmp_path / "x.db", timeout=3.0)
        source = create_library_source(config)
        assert isinstance(source, SqliteLibrarySource)
        assert source.timeout == 3.0
        assert not source.is_open

    async def test_open_memory_seeds_development_user(self) -> None:
        source = await open_library_source(StoreConfig())
        user = (await source.get_user(1)).result
        assert user == User(1, "username", "password-hash")
        assert (await source.get_default_tag_type(1)).result == TagType(0)

    async def test_open_memory_without_seed(self) -> None:
        config = StoreConfig()
        config.development.seed_user = False
        source = await open_library_source(config)
        assert (await source.get_all_users()).result == {}

    async def test_open_sqlite_does_not_seed(self, tmp_path: Path) -> None:
        config = StoreConfig(backend=Backend.SQLITE, db_path=tmp_path / "x.db")
        source = await open_library_source(config)
        try:
            assert (await source.get_all_users()).result == {}
        finally:
            await source.close()
