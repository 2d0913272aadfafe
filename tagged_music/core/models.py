"""
Entity records for the tagged music library.

This module is intentionally lightweight:
- No storage knowledge
- Pure frozen dataclasses + small helpers

Songs, tags and tag types do not carry their own key. They are stored under a
user-scoped key (song id, tag name, tag type name) by the library source, the
same way a mapping value does not know its key.

References between entities are weak and by name:
- `Song.tags` holds tag names, not `Tag` objects
- `Tag.type` holds a tag type name (or None for "use the default tag type")
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Final, Iterable, NewType

UserId = NewType("UserId", int)
SongId = NewType("SongId", int)
TagName = NewType("TagName", str)
TagTypeName = NewType("TagTypeName", str)
DataKey = NewType("DataKey", str)

# The default tag type lives in the tag type collection under this key.
DEFAULT_TAG_TYPE_NAME: Final[str] = ""


@dataclass(frozen=True, slots=True)
class User:
    """
    A library owner.

    `pass_hash` is opaque to the store: hashing and verification belong to the
    caller.
    """

    id: int
    username: str
    pass_hash: str
    admin: bool = False


@dataclass(frozen=True, slots=True)
class Song:
    """
    Song metadata as stored in a user's library.

    Notes:
    - `tags` is normalized to a frozenset of tag names.
    - `create_date` and `modify_date` default to the construction time.
    """

    file_name: str
    title: str
    duration: int
    track_num: int | None = None
    release_date: datetime | None = None
    create_date: datetime = field(default_factory=datetime.now)
    modify_date: datetime = field(default_factory=datetime.now)
    play_count: int = 0
    tags: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags))

    def with_tags(self, tags: Iterable[str]) -> Song:
        """Return a copy of this song with a different tag set."""
        return replace(self, tags=frozenset(tags))


@dataclass(frozen=True, slots=True)
class Tag:
    """A label attachable to songs. `type` None means the default tag type applies."""

    type: str | None = None
    description: str | None = None

    def with_type(self, type_name: str | None) -> Tag:
        return replace(self, type=type_name)


@dataclass(frozen=True, slots=True)
class TagType:
    """Category for tags, carrying a display color."""

    color: int


@dataclass(frozen=True, slots=True)
class DataEntry:
    """Client-defined key/value pair."""

    key: str
    value: str


def to_iso(value: datetime | None) -> str | None:
    """Serialize an optional timestamp as ISO-8601 text."""
    if value is None:
        return None
    return value.isoformat()


def from_iso(value: str | None) -> datetime | None:
    """Parse optional ISO-8601 text back into a timestamp."""
    if value is None:
        return None
    return datetime.fromisoformat(value)
