"""
User-related DB queries for `SqliteLibrarySource`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- They never commit; the caller owns the transaction.
- These functions assume `conn.row_factory = aiosqlite.Row`.
"""

from __future__ import annotations

import aiosqlite

from tagged_music.core.models import DEFAULT_TAG_TYPE_NAME, TagType, User


def _row_to_user(row: aiosqlite.Row) -> User:
    return User(
        id=int(row["id"]),
        username=str(row["username"]),
        pass_hash=str(row["pass_hash"]),
        admin=bool(row["admin"]),
    )


async def user_exists(conn: aiosqlite.Connection, user_id: int) -> bool:
    cursor = await conn.execute("SELECT 1 FROM users WHERE id = ?;", (int(user_id),))
    return await cursor.fetchone() is not None


async def get_user(conn: aiosqlite.Connection, user_id: int) -> User | None:
    cursor = await conn.execute(
        "SELECT id, username, pass_hash, admin FROM users WHERE id = ?;",
        (int(user_id),),
    )
    row = await cursor.fetchone()
    return _row_to_user(row) if row is not None else None


async def get_user_by_username(conn: aiosqlite.Connection, username: str) -> User | None:
    cursor = await conn.execute(
        "SELECT id, username, pass_hash, admin FROM users WHERE username = ?;",
        (username,),
    )
    row = await cursor.fetchone()
    return _row_to_user(row) if row is not None else None


async def list_users(conn: aiosqlite.Connection) -> dict[int, User]:
    cursor = await conn.execute("SELECT id, username, pass_hash, admin FROM users ORDER BY id;")
    rows = await cursor.fetchall()
    return {int(r["id"]): _row_to_user(r) for r in rows}


async def insert_user(conn: aiosqlite.Connection, user: User, default_tag_type: TagType) -> None:
    """Insert a user together with their default tag type."""
    await conn.execute(
        "INSERT INTO users (id, username, pass_hash, admin) VALUES (?, ?, ?, ?);",
        (int(user.id), user.username, user.pass_hash, 1 if user.admin else 0),
    )
    await conn.execute(
        "INSERT INTO tag_types (user_id, name, color) VALUES (?, ?, ?);",
        (int(user.id), DEFAULT_TAG_TYPE_NAME, int(default_tag_type.color)),
    )


async def update_username(conn: aiosqlite.Connection, user_id: int, username: str) -> None:
    await conn.execute("UPDATE users SET username = ? WHERE id = ?;", (username, int(user_id)))


async def update_pass_hash(conn: aiosqlite.Connection, user_id: int, pass_hash: str) -> None:
    await conn.execute("UPDATE users SET pass_hash = ? WHERE id = ?;", (pass_hash, int(user_id)))


async def update_privileges(conn: aiosqlite.Connection, user_id: int, admin: bool) -> None:
    await conn.execute(
        "UPDATE users SET admin = ? WHERE id = ?;", (1 if admin else 0, int(user_id))
    )


async def delete_user(conn: aiosqlite.Connection, user_id: int) -> None:
    """Delete a user; per-user tables follow through ON DELETE CASCADE."""
    await conn.execute("DELETE FROM users WHERE id = ?;", (int(user_id),))
