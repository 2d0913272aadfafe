"""
The library source contract.

`LibrarySource` is the single storage abstraction of Tagged Music. Every
backend (in-memory, SQLite) implements exactly these coroutines and must be
indistinguishable through them.

Response contract:
- Retrieval with an unknown user id or unknown item returns SUCCESS with a
  None, False or empty result. A missing item is an absence, not an error.
- Updates (put/set/user attributes) with an unknown user id return
  BAD_REQUEST and change nothing.
- Removals with an unknown user id return BAD_REQUEST. Removals of an unknown
  item for a known user return SUCCESS.
- CONNECTION_ISSUE and TIME_OUT are only produced by backends with real I/O.

Invariants every backend keeps after each update, per user:
1. The default tag type (key "") always exists.
2. `put_song` adds `Tag()` for every tag name on the song not yet in the library.
3. `put_tag` with an unseen, non-None type adds that tag type as a copy of the
   current default tag type.
4. `remove_tag` strips the tag name from every song.
5. `remove_tag_type` sets `type=None` on every tag that referenced it.
6. `remove_user` drops all of the user's collections at once.
"""

from __future__ import annotations

import abc
from types import TracebackType
from typing import Final, Iterable, Mapping

from tagged_music.core.models import Song, Tag, TagType, User
from tagged_music.core.response import Response

# Indicates which format and features a library source provides.
LIBRARY_VERSION: Final[str] = "1.0"


def filter_by_tags(
    songs: Mapping[int, Song],
    include_tags: Iterable[str] = (),
    exclude_tags: Iterable[str] = (),
) -> dict[int, Song]:
    """
    Return the songs that carry every tag in `include_tags` and none of `exclude_tags`.

    Empty filters impose no constraint. The result order is not meaningful.
    """
    include = frozenset(include_tags)
    exclude = frozenset(exclude_tags)
    return {
        song_id: song
        for song_id, song in songs.items()
        if include <= song.tags and exclude.isdisjoint(song.tags)
    }


class LibrarySource(abc.ABC):
    """
    Access to users' libraries.

    Usage:
        async with SqliteLibrarySource("library.db") as source:
            response = await source.get_song(user_id, song_id)
            if response.ok and response.result is not None:
                ...
    """

    async def open(self) -> None:
        """Acquire backend resources. Backends without I/O need not override."""

    async def close(self) -> None:
        """Release backend resources. Backends without I/O need not override."""

    async def __aenter__(self) -> LibrarySource:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ---- Retrieving ----

    @abc.abstractmethod
    async def get_version(self) -> Response[str]:
        """Retrieve the `LIBRARY_VERSION` this source implements."""

    @abc.abstractmethod
    async def get_default_tag_type(self, user_id: int) -> Response[TagType | None]:
        """Retrieve the tag type used when a tag has no tag type."""

    @abc.abstractmethod
    async def has_song(self, user_id: int, song_id: int) -> Response[bool]: ...

    @abc.abstractmethod
    async def get_song(self, user_id: int, song_id: int) -> Response[Song | None]: ...

    @abc.abstractmethod
    async def get_all_songs(self, user_id: int) -> Response[dict[int, Song]]: ...

    @abc.abstractmethod
    async def get_songs_by_tags(
        self,
        user_id: int,
        include_tags: Iterable[str] = (),
        exclude_tags: Iterable[str] = (),
    ) -> Response[dict[int, Song]]:
        """
        Retrieve the songs that satisfy the tag filters.

        Args:
            include_tags: Songs must have all of these tags (empty: no constraint).
            exclude_tags: Songs cannot have any of these tags (empty: no constraint).
        """

    @abc.abstractmethod
    async def has_tag(self, user_id: int, tag_name: str) -> Response[bool]: ...

    @abc.abstractmethod
    async def get_tag(self, user_id: int, tag_name: str) -> Response[Tag | None]: ...

    @abc.abstractmethod
    async def get_all_tags(self, user_id: int) -> Response[dict[str, Tag]]: ...

    @abc.abstractmethod
    async def has_tag_type(self, user_id: int, tag_type_name: str) -> Response[bool]: ...

    @abc.abstractmethod
    async def get_tag_type(self, user_id: int, tag_type_name: str) -> Response[TagType | None]: ...

    @abc.abstractmethod
    async def get_all_tag_types(self, user_id: int) -> Response[dict[str, TagType]]: ...

    @abc.abstractmethod
    async def has_data(self, user_id: int, key: str) -> Response[bool]: ...

    @abc.abstractmethod
    async def get_data(self, user_id: int, key: str) -> Response[str | None]: ...

    @abc.abstractmethod
    async def get_all_data(self, user_id: int) -> Response[dict[str, str]]: ...

    # ---- Updating ----

    @abc.abstractmethod
    async def set_default_tag_type(self, user_id: int, tag_type: TagType) -> Response[None]:
        """Replace the tag type used when a tag has no tag type."""

    @abc.abstractmethod
    async def put_song(self, user_id: int, song_id: int, song: Song) -> Response[None]:
        """Add or replace a song. Unseen tag names on the song become new tags."""

    @abc.abstractmethod
    async def remove_song(self, user_id: int, song_id: int) -> Response[None]: ...

    @abc.abstractmethod
    async def put_tag(self, user_id: int, tag_name: str, tag: Tag) -> Response[None]:
        """Add or replace a tag. An unseen tag type is created from the default tag type."""

    @abc.abstractmethod
    async def remove_tag(self, user_id: int, tag_name: str) -> Response[None]:
        """Remove a tag and strip it from every song that has it."""

    @abc.abstractmethod
    async def put_tag_type(
        self, user_id: int, tag_type_name: str, tag_type: TagType
    ) -> Response[None]: ...

    @abc.abstractmethod
    async def remove_tag_type(self, user_id: int, tag_type_name: str) -> Response[None]:
        """
        Remove a tag type; tags that used it are left without a tag type.

        The default tag type cannot be removed (BAD_REQUEST).
        """

    @abc.abstractmethod
    async def put_data(self, user_id: int, key: str, value: str) -> Response[None]: ...

    @abc.abstractmethod
    async def remove_data(self, user_id: int, key: str) -> Response[None]: ...

    # ---- Users ----

    @abc.abstractmethod
    async def get_user(self, user_id: int) -> Response[User | None]: ...

    @abc.abstractmethod
    async def get_user_by_username(self, username: str) -> Response[User | None]: ...

    @abc.abstractmethod
    async def get_all_users(self) -> Response[dict[int, User]]: ...

    @abc.abstractmethod
    async def get_pass_hash(self, user_id: int) -> Response[str | None]: ...

    @abc.abstractmethod
    async def add_user(self, user: User, default_tag_type: TagType) -> Response[int | None]:
        """
        Add a new user with empty collections and `default_tag_type` as default.

        Returns:
            Response containing the id of the new user, or None with BAD_REQUEST
            when the id or username is already taken.
        """

    @abc.abstractmethod
    async def update_username(self, user_id: int, username: str) -> Response[None]: ...

    @abc.abstractmethod
    async def update_pass_hash(self, user_id: int, pass_hash: str) -> Response[None]: ...

    @abc.abstractmethod
    async def update_privileges(self, user_id: int, admin: bool) -> Response[None]: ...

    @abc.abstractmethod
    async def remove_user(self, user_id: int) -> Response[None]:
        """Remove a user together with all of their library data."""
