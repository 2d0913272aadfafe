"""
Database schema + migrations for the SQLite library source.

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Every per-user table is keyed by `(user_id, <item key>)` and references
  `users(id)` with ON DELETE CASCADE, so removing a user removes all of
  their library data in the same statement.
- Song -> tag and tag -> tag type references are weak (by name) and carry no
  foreign key; the library source keeps them consistent.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

from tagged_music.core.source import LIBRARY_VERSION

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 1


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - foreign_keys pragma is enabled by the caller
    """
    # meta: library version and future key-value flags
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    await conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) VALUES ('library_version', ?);",
        (LIBRARY_VERSION,),
    )
    await conn.commit()

    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """
    Perform forward-only migrations.

    Keep migrations small. If you need a big refactor, create a new DB.
    """
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                pass_hash TEXT NOT NULL,
                admin INTEGER NOT NULL DEFAULT 0
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tag_types (
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                color INTEGER NOT NULL,
                PRIMARY KEY (user_id, name)
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tags (
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                type TEXT,
                description TEXT,
                PRIMARY KEY (user_id, name)
            )
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tags_type ON tags(user_id, type);")

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS songs (
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                id INTEGER NOT NULL,
                file_name TEXT NOT NULL,
                title TEXT NOT NULL,
                duration INTEGER NOT NULL,
                track_num INTEGER,
                release_date TEXT,
                create_date TEXT NOT NULL,
                modify_date TEXT NOT NULL,
                play_count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, id)
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS song_tags (
                user_id INTEGER NOT NULL,
                song_id INTEGER NOT NULL,
                tag_name TEXT NOT NULL,
                PRIMARY KEY (user_id, song_id, tag_name),
                FOREIGN KEY (user_id, song_id) REFERENCES songs(user_id, id) ON DELETE CASCADE
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_song_tags_tag ON song_tags(user_id, tag_name);"
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS data (
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (user_id, key)
            )
            """
        )

        await conn.commit()
        from_version = 1

    if from_version != to_version:
        raise RuntimeError(f"No migration path from {from_version} to {to_version}.")
