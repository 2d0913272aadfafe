"""
In-memory library source.

This backend keeps everything in process memory and is meant for development
and tests only: restarting the process loses all data. It doubles as the
executable reference for the cascade rules of `LibrarySource`.

Locking:
- Each user's four collections are guarded by a per-user asyncio lock, so
  updates for different users never wait on each other.
- The user registry (creation, removal, user attribute updates) is guarded by
  a separate registry lock. Lock order is always user -> registry, and the
  registry lock is never held across an await.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable

from tagged_music.core import InvariantError
from tagged_music.core.models import DEFAULT_TAG_TYPE_NAME, Song, Tag, TagType, User
from tagged_music.core.response import Response
from tagged_music.core.source import LIBRARY_VERSION, LibrarySource, filter_by_tags

logger = logging.getLogger(__name__)


@dataclass
class _UserLibrary:
    """The four collections owned by one user."""

    songs: dict[int, Song] = field(default_factory=dict)
    tags: dict[str, Tag] = field(default_factory=dict)
    tag_types: dict[str, TagType] = field(default_factory=dict)
    data: dict[str, str] = field(default_factory=dict)

    def default_tag_type(self) -> TagType:
        try:
            return self.tag_types[DEFAULT_TAG_TYPE_NAME]
        except KeyError:
            raise InvariantError("User library has no default tag type") from None


class InMemoryLibrarySource(LibrarySource):
    """`LibrarySource` stored in memory, for development use only."""

    def __init__(self) -> None:
        self._version = LIBRARY_VERSION
        self._users: dict[int, User] = {}
        self._libraries: dict[int, _UserLibrary] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    @asynccontextmanager
    async def _library(self, user_id: int) -> AsyncIterator[_UserLibrary | None]:
        """
        Hold the user's lock and yield their library, or None for an unknown user.

        The user may be removed while we wait for the lock, so the library is
        looked up again once the lock is held.
        """
        lock = self._locks.get(user_id)
        if lock is None:
            yield None
            return
        async with lock:
            yield self._libraries.get(user_id)

    # ---- Retrieving ----

    async def get_version(self) -> Response[str]:
        return Response.success(self._version)

    async def get_default_tag_type(self, user_id: int) -> Response[TagType | None]:
        async with self._library(user_id) as lib:
            return Response.success(lib.default_tag_type() if lib else None)

    async def has_song(self, user_id: int, song_id: int) -> Response[bool]:
        async with self._library(user_id) as lib:
            return Response.success(lib is not None and song_id in lib.songs)

    async def get_song(self, user_id: int, song_id: int) -> Response[Song | None]:
        async with self._library(user_id) as lib:
            return Response.success(lib.songs.get(song_id) if lib else None)

    async def get_all_songs(self, user_id: int) -> Response[dict[int, Song]]:
        async with self._library(user_id) as lib:
            return Response.success(dict(lib.songs) if lib else {})

    async def get_songs_by_tags(
        self,
        user_id: int,
        include_tags: Iterable[str] = (),
        exclude_tags: Iterable[str] = (),
    ) -> Response[dict[int, Song]]:
        async with self._library(user_id) as lib:
            if lib is None:
                return Response.success({})
            return Response.success(filter_by_tags(lib.songs, include_tags, exclude_tags))

    async def has_tag(self, user_id: int, tag_name: str) -> Response[bool]:
        async with self._library(user_id) as lib:
            return Response.success(lib is not None and tag_name in lib.tags)

    async def get_tag(self, user_id: int, tag_name: str) -> Response[Tag | None]:
        async with self._library(user_id) as lib:
            return Response.success(lib.tags.get(tag_name) if lib else None)

    async def get_all_tags(self, user_id: int) -> Response[dict[str, Tag]]:
        async with self._library(user_id) as lib:
            return Response.success(dict(lib.tags) if lib else {})

    async def has_tag_type(self, user_id: int, tag_type_name: str) -> Response[bool]:
        async with self._library(user_id) as lib:
            return Response.success(lib is not None and tag_type_name in lib.tag_types)

    async def get_tag_type(self, user_id: int, tag_type_name: str) -> Response[TagType | None]:
        async with self._library(user_id) as lib:
            return Response.success(lib.tag_types.get(tag_type_name) if lib else None)

    async def get_all_tag_types(self, user_id: int) -> Response[dict[str, TagType]]:
        async with self._library(user_id) as lib:
            return Response.success(dict(lib.tag_types) if lib else {})

    async def has_data(self, user_id: int, key: str) -> Response[bool]:
        async with self._library(user_id) as lib:
            return Response.success(lib is not None and key in lib.data)

    async def get_data(self, user_id: int, key: str) -> Response[str | None]:
        async with self._library(user_id) as lib:
            return Response.success(lib.data.get(key) if lib else None)

    async def get_all_data(self, user_id: int) -> Response[dict[str, str]]:
        async with self._library(user_id) as lib:
            return Response.success(dict(lib.data) if lib else {})

    # ---- Updating ----

    async def set_default_tag_type(self, user_id: int, tag_type: TagType) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("set_default_tag_type", user_id)
            lib.tag_types[DEFAULT_TAG_TYPE_NAME] = tag_type
        logger.debug("User %d: default tag type set to %s", user_id, tag_type)
        return Response.success(None)

    async def put_song(self, user_id: int, song_id: int, song: Song) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("put_song", user_id)
            lib.songs[song_id] = song

            # Add new tags
            new_tags = [name for name in song.tags if name not in lib.tags]
            for name in new_tags:
                lib.tags[name] = Tag()

        logger.debug("User %d: put song %d (%d new tags)", user_id, song_id, len(new_tags))
        return Response.success(None)

    async def remove_song(self, user_id: int, song_id: int) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("remove_song", user_id)
            lib.songs.pop(song_id, None)
        logger.debug("User %d: removed song %d", user_id, song_id)
        return Response.success(None)

    async def put_tag(self, user_id: int, tag_name: str, tag: Tag) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("put_tag", user_id)

            # Add new tag type, copied from the default
            if tag.type is not None and tag.type not in lib.tag_types:
                lib.tag_types[tag.type] = lib.default_tag_type()

            lib.tags[tag_name] = tag

        logger.debug("User %d: put tag %r", user_id, tag_name)
        return Response.success(None)

    async def remove_tag(self, user_id: int, tag_name: str) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("remove_tag", user_id)

            lib.tags.pop(tag_name, None)

            # Remove tag from songs
            for song_id, song in lib.songs.items():
                if tag_name in song.tags:
                    lib.songs[song_id] = song.with_tags(song.tags - {tag_name})

        logger.debug("User %d: removed tag %r", user_id, tag_name)
        return Response.success(None)

    async def put_tag_type(
        self, user_id: int, tag_type_name: str, tag_type: TagType
    ) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("put_tag_type", user_id)
            lib.tag_types[tag_type_name] = tag_type
        logger.debug("User %d: put tag type %r", user_id, tag_type_name)
        return Response.success(None)

    async def remove_tag_type(self, user_id: int, tag_type_name: str) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("remove_tag_type", user_id)
            if tag_type_name == DEFAULT_TAG_TYPE_NAME:
                logger.debug("User %d: refusing to remove the default tag type", user_id)
                return Response.bad_request(None)

            lib.tag_types.pop(tag_type_name, None)

            # Remove tag type from tags
            for name, tag in lib.tags.items():
                if tag.type == tag_type_name:
                    lib.tags[name] = tag.with_type(None)

        logger.debug("User %d: removed tag type %r", user_id, tag_type_name)
        return Response.success(None)

    async def put_data(self, user_id: int, key: str, value: str) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("put_data", user_id)
            lib.data[key] = value
        return Response.success(None)

    async def remove_data(self, user_id: int, key: str) -> Response[None]:
        async with self._library(user_id) as lib:
            if lib is None:
                return _unknown_user("remove_data", user_id)
            lib.data.pop(key, None)
        return Response.success(None)

    # ---- Users ----

    async def get_user(self, user_id: int) -> Response[User | None]:
        async with self._registry_lock:
            return Response.success(self._users.get(user_id))

    async def get_user_by_username(self, username: str) -> Response[User | None]:
        async with self._registry_lock:
            return Response.success(self._find_username(username))

    async def get_all_users(self) -> Response[dict[int, User]]:
        async with self._registry_lock:
            return Response.success(dict(self._users))

    async def get_pass_hash(self, user_id: int) -> Response[str | None]:
        async with self._registry_lock:
            user = self._users.get(user_id)
            return Response.success(user.pass_hash if user else None)

    async def add_user(self, user: User, default_tag_type: TagType) -> Response[int | None]:
        async with self._registry_lock:
            if user.id in self._users:
                logger.debug("add_user rejected: id %d already exists", user.id)
                return Response.bad_request(None)
            if self._find_username(user.username) is not None:
                logger.debug("add_user rejected: username %r already exists", user.username)
                return Response.bad_request(None)

            self._users[user.id] = user
            self._libraries[user.id] = _UserLibrary(
                tag_types={DEFAULT_TAG_TYPE_NAME: default_tag_type}
            )
            self._locks[user.id] = asyncio.Lock()

        logger.info("Added user %d (%s)", user.id, user.username)
        return Response.success(user.id)

    async def update_username(self, user_id: int, username: str) -> Response[None]:
        async with self._registry_lock:
            user = self._users.get(user_id)
            if user is None:
                return _unknown_user("update_username", user_id)
            holder = self._find_username(username)
            if holder is not None and holder.id != user_id:
                logger.debug("update_username rejected: %r is taken", username)
                return Response.bad_request(None)
            self._users[user_id] = User(user_id, username, user.pass_hash, user.admin)
        return Response.success(None)

    async def update_pass_hash(self, user_id: int, pass_hash: str) -> Response[None]:
        async with self._registry_lock:
            user = self._users.get(user_id)
            if user is None:
                return _unknown_user("update_pass_hash", user_id)
            self._users[user_id] = User(user_id, user.username, pass_hash, user.admin)
        return Response.success(None)

    async def update_privileges(self, user_id: int, admin: bool) -> Response[None]:
        async with self._registry_lock:
            user = self._users.get(user_id)
            if user is None:
                return _unknown_user("update_privileges", user_id)
            self._users[user_id] = User(user_id, user.username, user.pass_hash, admin)
        return Response.success(None)

    async def remove_user(self, user_id: int) -> Response[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            return _unknown_user("remove_user", user_id)
        async with lock, self._registry_lock:
            if self._locks.get(user_id) is not lock:
                # removed while we waited
                return _unknown_user("remove_user", user_id)
            del self._users[user_id]
            del self._libraries[user_id]
            del self._locks[user_id]

        logger.info("Removed user %d and all library data", user_id)
        return Response.success(None)

    def _find_username(self, username: str) -> User | None:
        for user in self._users.values():
            if user.username == username:
                return user
        return None


def _unknown_user(operation: str, user_id: int) -> Response[None]:
    logger.debug("%s rejected: unknown user %d", operation, user_id)
    return Response.bad_request(None)
