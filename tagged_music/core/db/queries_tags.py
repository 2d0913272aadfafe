"""
Tag, tag type and data entry queries for `SqliteLibrarySource`.

These functions assume `conn.row_factory = aiosqlite.Row` and never commit.
"""

from __future__ import annotations

import aiosqlite

from tagged_music.core.models import DEFAULT_TAG_TYPE_NAME, DataEntry, Tag, TagType

# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def _row_to_tag(row: aiosqlite.Row) -> Tag:
    return Tag(type=row["type"], description=row["description"])


async def tag_exists(conn: aiosqlite.Connection, user_id: int, name: str) -> bool:
    cursor = await conn.execute(
        "SELECT 1 FROM tags WHERE user_id = ? AND name = ?;", (int(user_id), name)
    )
    return await cursor.fetchone() is not None


async def get_tag(conn: aiosqlite.Connection, user_id: int, name: str) -> Tag | None:
    cursor = await conn.execute(
        "SELECT type, description FROM tags WHERE user_id = ? AND name = ?;",
        (int(user_id), name),
    )
    row = await cursor.fetchone()
    return _row_to_tag(row) if row is not None else None


async def list_tags(conn: aiosqlite.Connection, user_id: int) -> dict[str, Tag]:
    cursor = await conn.execute(
        "SELECT name, type, description FROM tags WHERE user_id = ?;", (int(user_id),)
    )
    rows = await cursor.fetchall()
    return {str(r["name"]): _row_to_tag(r) for r in rows}


async def upsert_tag(conn: aiosqlite.Connection, user_id: int, name: str, tag: Tag) -> None:
    await conn.execute(
        """
        INSERT INTO tags (user_id, name, type, description) VALUES (?, ?, ?, ?)
        ON CONFLICT(user_id, name) DO UPDATE SET
            type        = excluded.type,
            description = excluded.description
        """,
        (int(user_id), name, tag.type, tag.description),
    )


async def delete_tag(conn: aiosqlite.Connection, user_id: int, name: str) -> None:
    await conn.execute("DELETE FROM tags WHERE user_id = ? AND name = ?;", (int(user_id), name))


async def clear_tag_type(conn: aiosqlite.Connection, user_id: int, type_name: str) -> None:
    """Leave every tag that used `type_name` without a tag type."""
    await conn.execute(
        "UPDATE tags SET type = NULL WHERE user_id = ? AND type = ?;",
        (int(user_id), type_name),
    )


# ---------------------------------------------------------------------------
# Tag types
# ---------------------------------------------------------------------------


async def tag_type_exists(conn: aiosqlite.Connection, user_id: int, name: str) -> bool:
    cursor = await conn.execute(
        "SELECT 1 FROM tag_types WHERE user_id = ? AND name = ?;", (int(user_id), name)
    )
    return await cursor.fetchone() is not None


async def get_tag_type(conn: aiosqlite.Connection, user_id: int, name: str) -> TagType | None:
    cursor = await conn.execute(
        "SELECT color FROM tag_types WHERE user_id = ? AND name = ?;",
        (int(user_id), name),
    )
    row = await cursor.fetchone()
    return TagType(color=int(row["color"])) if row is not None else None


async def get_default_tag_type(conn: aiosqlite.Connection, user_id: int) -> TagType | None:
    return await get_tag_type(conn, user_id, DEFAULT_TAG_TYPE_NAME)


async def list_tag_types(conn: aiosqlite.Connection, user_id: int) -> dict[str, TagType]:
    cursor = await conn.execute(
        "SELECT name, color FROM tag_types WHERE user_id = ?;", (int(user_id),)
    )
    rows = await cursor.fetchall()
    return {str(r["name"]): TagType(color=int(r["color"])) for r in rows}


async def upsert_tag_type(
    conn: aiosqlite.Connection, user_id: int, name: str, tag_type: TagType
) -> None:
    await conn.execute(
        """
        INSERT INTO tag_types (user_id, name, color) VALUES (?, ?, ?)
        ON CONFLICT(user_id, name) DO UPDATE SET color = excluded.color
        """,
        (int(user_id), name, int(tag_type.color)),
    )


async def delete_tag_type(conn: aiosqlite.Connection, user_id: int, name: str) -> None:
    await conn.execute(
        "DELETE FROM tag_types WHERE user_id = ? AND name = ?;", (int(user_id), name)
    )


# ---------------------------------------------------------------------------
# Data entries
# ---------------------------------------------------------------------------


async def data_exists(conn: aiosqlite.Connection, user_id: int, key: str) -> bool:
    cursor = await conn.execute(
        "SELECT 1 FROM data WHERE user_id = ? AND key = ?;", (int(user_id), key)
    )
    return await cursor.fetchone() is not None


async def get_data(conn: aiosqlite.Connection, user_id: int, key: str) -> DataEntry | None:
    cursor = await conn.execute(
        "SELECT key, value FROM data WHERE user_id = ? AND key = ?;", (int(user_id), key)
    )
    row = await cursor.fetchone()
    return DataEntry(key=str(row["key"]), value=str(row["value"])) if row is not None else None


async def list_data(conn: aiosqlite.Connection, user_id: int) -> list[DataEntry]:
    cursor = await conn.execute("SELECT key, value FROM data WHERE user_id = ?;", (int(user_id),))
    rows = await cursor.fetchall()
    return [DataEntry(key=str(r["key"]), value=str(r["value"])) for r in rows]


async def upsert_data(conn: aiosqlite.Connection, user_id: int, entry: DataEntry) -> None:
    await conn.execute(
        """
        INSERT INTO data (user_id, key, value) VALUES (?, ?, ?)
        ON CONFLICT(user_id, key) DO UPDATE SET value = excluded.value
        """,
        (int(user_id), entry.key, entry.value),
    )


async def delete_data(conn: aiosqlite.Connection, user_id: int, key: str) -> None:
    await conn.execute("DELETE FROM data WHERE user_id = ? AND key = ?;", (int(user_id), key))
