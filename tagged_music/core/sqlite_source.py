"""
SQLite-backed library source.

Goals:
- Same observable behavior as `InMemoryLibrarySource` for every operation.
- SQLite + aiosqlite, async/await friendly.
- Backend failures become statuses, not exceptions.

Each operation runs as one transaction on a single connection. Waiting for the
connection and running the operation are bounded by `timeout` seconds:
- exceeding the timeout returns TIME_OUT (the transaction is rolled back)
- a commit that has started always completes and reports its real outcome
- `sqlite3.OperationalError` (locked database, I/O errors) and calls on a
  source that is not open return CONNECTION_ISSUE
- anything else is a bug and propagates

`open()` raises `StoreConnectionError` when the database cannot be opened.

SQL lives in `tagged_music.core.db.queries_*`; schema/migrations live in
`tagged_music.core.db.schema`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable, TypeVar

import aiosqlite

from tagged_music.core import InvariantError, StoreConnectionError
from tagged_music.core.db import queries_songs, queries_tags, queries_users
from tagged_music.core.db.schema import ensure_schema
from tagged_music.core.models import DEFAULT_TAG_TYPE_NAME, DataEntry, Song, Tag, TagType, User
from tagged_music.core.response import Response, Status
from tagged_music.core.source import LibrarySource

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 5.0


class SqliteLibrarySource(LibrarySource):
    """
    `LibrarySource` persisted in a SQLite database.

    Usage:
        source = SqliteLibrarySource("library.db")
        await source.open()
        ... operations ...
        await source.close()

    Notes:
    - `open()` connects and ensures the schema; `close()` releases the connection.
    - Connections are not pooled; operations are serialized on one connection.
    """

    def __init__(self, db_path: str | Path, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self._db_path = str(db_path)
        self._timeout = timeout
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def timeout(self) -> float:
        return self._timeout

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            conn = await aiosqlite.connect(self._db_path)
        except aiosqlite.Error as e:
            raise StoreConnectionError(f"Cannot open {self._db_path}: {e}") from e
        conn.row_factory = aiosqlite.Row

        try:
            await conn.execute("PRAGMA foreign_keys = ON;")
            await conn.execute("PRAGMA journal_mode = WAL;")
            await conn.execute("PRAGMA synchronous = NORMAL;")
            await ensure_schema(conn)
        except aiosqlite.Error as e:
            await conn.close()
            raise StoreConnectionError(f"Cannot prepare {self._db_path}: {e}") from e
        except BaseException:
            await conn.close()
            raise

        self._conn = conn
        logger.info("Opened SQLite library source at %s", self._db_path)

    async def close(self) -> None:
        async with self._lock:
            if self._conn is None:
                return
            await self._conn.close()
            self._conn = None
        logger.info("Closed SQLite library source at %s", self._db_path)

    # ---- Plumbing ----

    async def _run(
        self,
        name: str,
        op: Callable[[aiosqlite.Connection], Awaitable[Response[T]]],
        empty: T,
    ) -> Response[T]:
        """Run `op` in a bounded transaction and map backend failures to statuses."""
        try:
            return await self._transaction(name, op, empty)
        except TimeoutError:
            logger.warning("%s timed out after %.2fs", name, self._timeout)
            return Response(empty, Status.TIME_OUT)
        except aiosqlite.OperationalError as e:
            logger.warning("%s failed: %s", name, e)
            return Response(empty, Status.CONNECTION_ISSUE)

    async def _transaction(
        self,
        name: str,
        op: Callable[[aiosqlite.Connection], Awaitable[Response[T]]],
        empty: T,
    ) -> Response[T]:
        """
        Run `op` under the connection lock and commit it.

        The deadline covers waiting for the lock and running `op`. The commit
        is not bounded: once it starts, the caller gets the committed result.
        """
        deadline = asyncio.get_running_loop().time() + self._timeout
        async with asyncio.timeout_at(deadline):
            await self._lock.acquire()
        try:
            conn = self._conn
            if conn is None:
                logger.warning("%s failed: library source is not open", name)
                return Response(empty, Status.CONNECTION_ISSUE)
            try:
                async with asyncio.timeout_at(deadline):
                    response = await op(conn)
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()
            return response
        finally:
            self._lock.release()

    async def _read(
        self,
        name: str,
        query: Callable[[aiosqlite.Connection], Awaitable[T]],
        empty: T,
    ) -> Response[T]:
        async def op(conn: aiosqlite.Connection) -> Response[T]:
            return Response.success(await query(conn))

        return await self._run(name, op, empty)

    async def _update(
        self,
        name: str,
        user_id: int,
        update: Callable[[aiosqlite.Connection], Awaitable[Response[None] | None]],
    ) -> Response[None]:
        """Run `update` for an existing user; unknown users get BAD_REQUEST."""

        async def op(conn: aiosqlite.Connection) -> Response[None]:
            if not await queries_users.user_exists(conn, user_id):
                logger.debug("%s rejected: unknown user %d", name, user_id)
                return Response.bad_request(None)
            response = await update(conn)
            return response if response is not None else Response.success(None)

        return await self._run(name, op, None)

    # ---- Retrieving ----

    async def get_version(self) -> Response[str]:
        async def query(conn: aiosqlite.Connection) -> str:
            cursor = await conn.execute("SELECT value FROM meta WHERE key = 'library_version';")
            row = await cursor.fetchone()
            if row is None:
                raise InvariantError("Library version missing from meta table")
            return str(row["value"])

        return await self._read("get_version", query, "")

    async def get_default_tag_type(self, user_id: int) -> Response[TagType | None]:
        return await self._read(
            "get_default_tag_type",
            lambda conn: queries_tags.get_default_tag_type(conn, user_id),
            None,
        )

    async def has_song(self, user_id: int, song_id: int) -> Response[bool]:
        return await self._read(
            "has_song", lambda conn: queries_songs.song_exists(conn, user_id, song_id), False
        )

    async def get_song(self, user_id: int, song_id: int) -> Response[Song | None]:
        return await self._read(
            "get_song", lambda conn: queries_songs.get_song(conn, user_id, song_id), None
        )

    async def get_all_songs(self, user_id: int) -> Response[dict[int, Song]]:
        return await self._read(
            "get_all_songs", lambda conn: queries_songs.list_songs(conn, user_id), {}
        )

    async def get_songs_by_tags(
        self,
        user_id: int,
        include_tags: Iterable[str] = (),
        exclude_tags: Iterable[str] = (),
    ) -> Response[dict[int, Song]]:
        include = frozenset(include_tags)
        exclude = frozenset(exclude_tags)
        return await self._read(
            "get_songs_by_tags",
            lambda conn: queries_songs.list_songs(
                conn, user_id, include_tags=include, exclude_tags=exclude
            ),
            {},
        )

    async def has_tag(self, user_id: int, tag_name: str) -> Response[bool]:
        return await self._read(
            "has_tag", lambda conn: queries_tags.tag_exists(conn, user_id, tag_name), False
        )

    async def get_tag(self, user_id: int, tag_name: str) -> Response[Tag | None]:
        return await self._read(
            "get_tag", lambda conn: queries_tags.get_tag(conn, user_id, tag_name), None
        )

    async def get_all_tags(self, user_id: int) -> Response[dict[str, Tag]]:
        return await self._read(
            "get_all_tags", lambda conn: queries_tags.list_tags(conn, user_id), {}
        )

    async def has_tag_type(self, user_id: int, tag_type_name: str) -> Response[bool]:
        return await self._read(
            "has_tag_type",
            lambda conn: queries_tags.tag_type_exists(conn, user_id, tag_type_name),
            False,
        )

    async def get_tag_type(self, user_id: int, tag_type_name: str) -> Response[TagType | None]:
        return await self._read(
            "get_tag_type",
            lambda conn: queries_tags.get_tag_type(conn, user_id, tag_type_name),
            None,
        )

    async def get_all_tag_types(self, user_id: int) -> Response[dict[str, TagType]]:
        return await self._read(
            "get_all_tag_types", lambda conn: queries_tags.list_tag_types(conn, user_id), {}
        )

    async def has_data(self, user_id: int, key: str) -> Response[bool]:
        return await self._read(
            "has_data", lambda conn: queries_tags.data_exists(conn, user_id, key), False
        )

    async def get_data(self, user_id: int, key: str) -> Response[str | None]:
        async def query(conn: aiosqlite.Connection) -> str | None:
            entry = await queries_tags.get_data(conn, user_id, key)
            return entry.value if entry is not None else None

        return await self._read("get_data", query, None)

    async def get_all_data(self, user_id: int) -> Response[dict[str, str]]:
        async def query(conn: aiosqlite.Connection) -> dict[str, str]:
            return {e.key: e.value for e in await queries_tags.list_data(conn, user_id)}

        return await self._read("get_all_data", query, {})

    # ---- Updating ----

    async def set_default_tag_type(self, user_id: int, tag_type: TagType) -> Response[None]:
        return await self._update(
            "set_default_tag_type",
            user_id,
            lambda conn: queries_tags.upsert_tag_type(
                conn, user_id, DEFAULT_TAG_TYPE_NAME, tag_type
            ),
        )

    async def put_song(self, user_id: int, song_id: int, song: Song) -> Response[None]:
        async def update(conn: aiosqlite.Connection) -> None:
            created = await queries_songs.upsert_song(conn, user_id, song_id, song)
            logger.debug("User %d: put song %d (%d new tags)", user_id, song_id, created)

        return await self._update("put_song", user_id, update)

    async def remove_song(self, user_id: int, song_id: int) -> Response[None]:
        return await self._update(
            "remove_song", user_id, lambda conn: queries_songs.delete_song(conn, user_id, song_id)
        )

    async def put_tag(self, user_id: int, tag_name: str, tag: Tag) -> Response[None]:
        async def update(conn: aiosqlite.Connection) -> None:
            # Add new tag type, copied from the default
            if tag.type is not None and not await queries_tags.tag_type_exists(
                conn, user_id, tag.type
            ):
                default = await queries_tags.get_default_tag_type(conn, user_id)
                if default is None:
                    raise InvariantError(f"User {user_id} has no default tag type")
                await queries_tags.upsert_tag_type(conn, user_id, tag.type, default)

            await queries_tags.upsert_tag(conn, user_id, tag_name, tag)

        return await self._update("put_tag", user_id, update)

    async def remove_tag(self, user_id: int, tag_name: str) -> Response[None]:
        async def update(conn: aiosqlite.Connection) -> None:
            await queries_tags.delete_tag(conn, user_id, tag_name)
            await queries_songs.strip_tag(conn, user_id, tag_name)

        return await self._update("remove_tag", user_id, update)

    async def put_tag_type(
        self, user_id: int, tag_type_name: str, tag_type: TagType
    ) -> Response[None]:
        return await self._update(
            "put_tag_type",
            user_id,
            lambda conn: queries_tags.upsert_tag_type(conn, user_id, tag_type_name, tag_type),
        )

    async def remove_tag_type(self, user_id: int, tag_type_name: str) -> Response[None]:
        async def update(conn: aiosqlite.Connection) -> Response[None] | None:
            if tag_type_name == DEFAULT_TAG_TYPE_NAME:
                logger.debug("User %d: refusing to remove the default tag type", user_id)
                return Response.bad_request(None)
            await queries_tags.delete_tag_type(conn, user_id, tag_type_name)
            await queries_tags.clear_tag_type(conn, user_id, tag_type_name)
            return None

        return await self._update("remove_tag_type", user_id, update)

    async def put_data(self, user_id: int, key: str, value: str) -> Response[None]:
        return await self._update(
            "put_data",
            user_id,
            lambda conn: queries_tags.upsert_data(conn, user_id, DataEntry(key, value)),
        )

    async def remove_data(self, user_id: int, key: str) -> Response[None]:
        return await self._update(
            "remove_data", user_id, lambda conn: queries_tags.delete_data(conn, user_id, key)
        )

    # ---- Users ----

    async def get_user(self, user_id: int) -> Response[User | None]:
        return await self._read(
            "get_user", lambda conn: queries_users.get_user(conn, user_id), None
        )

    async def get_user_by_username(self, username: str) -> Response[User | None]:
        return await self._read(
            "get_user_by_username",
            lambda conn: queries_users.get_user_by_username(conn, username),
            None,
        )

    async def get_all_users(self) -> Response[dict[int, User]]:
        return await self._read("get_all_users", queries_users.list_users, {})

    async def get_pass_hash(self, user_id: int) -> Response[str | None]:
        async def query(conn: aiosqlite.Connection) -> str | None:
            user = await queries_users.get_user(conn, user_id)
            return user.pass_hash if user is not None else None

        return await self._read("get_pass_hash", query, None)

    async def add_user(self, user: User, default_tag_type: TagType) -> Response[int | None]:
        async def op(conn: aiosqlite.Connection) -> Response[int | None]:
            if await queries_users.user_exists(conn, user.id):
                logger.debug("add_user rejected: id %d already exists", user.id)
                return Response.bad_request(None)
            if await queries_users.get_user_by_username(conn, user.username) is not None:
                logger.debug("add_user rejected: username %r already exists", user.username)
                return Response.bad_request(None)
            await queries_users.insert_user(conn, user, default_tag_type)
            return Response.success(user.id)

        response = await self._run("add_user", op, None)
        if response.ok:
            logger.info("Added user %d (%s)", user.id, user.username)
        return response

    async def update_username(self, user_id: int, username: str) -> Response[None]:
        async def update(conn: aiosqlite.Connection) -> Response[None] | None:
            holder = await queries_users.get_user_by_username(conn, username)
            if holder is not None and holder.id != user_id:
                logger.debug("update_username rejected: %r is taken", username)
                return Response.bad_request(None)
            await queries_users.update_username(conn, user_id, username)
            return None

        return await self._update("update_username", user_id, update)

    async def update_pass_hash(self, user_id: int, pass_hash: str) -> Response[None]:
        return await self._update(
            "update_pass_hash",
            user_id,
            lambda conn: queries_users.update_pass_hash(conn, user_id, pass_hash),
        )

    async def update_privileges(self, user_id: int, admin: bool) -> Response[None]:
        return await self._update(
            "update_privileges",
            user_id,
            lambda conn: queries_users.update_privileges(conn, user_id, admin),
        )

    async def remove_user(self, user_id: int) -> Response[None]:
        response = await self._update(
            "remove_user", user_id, lambda conn: queries_users.delete_user(conn, user_id)
        )
        if response.ok:
            logger.info("Removed user %d and all library data", user_id)
        return response
