"""
Song-related DB queries for `SqliteLibrarySource`.

Songs are stored in `songs`, their tag names in `song_tags`. Reads materialize
`Song` records with the tag set attached.

Important:
- Do NOT interpolate user input into SQL. The only dynamic SQL here is the
  number of `?` placeholders in the tag filters.
"""

from __future__ import annotations

from typing import Iterable

import aiosqlite

from tagged_music.core.models import Song, from_iso, to_iso

_SONG_COLUMNS = """
    s.id, s.file_name, s.title, s.duration, s.track_num,
    s.release_date, s.create_date, s.modify_date, s.play_count
"""


def _row_to_song(row: aiosqlite.Row, tags: Iterable[str]) -> Song:
    return Song(
        file_name=str(row["file_name"]),
        title=str(row["title"]),
        duration=int(row["duration"]),
        track_num=row["track_num"],
        release_date=from_iso(row["release_date"]),
        create_date=from_iso(row["create_date"]),
        modify_date=from_iso(row["modify_date"]),
        play_count=int(row["play_count"]),
        tags=frozenset(tags),
    )


async def _tags_by_song(conn: aiosqlite.Connection, user_id: int) -> dict[int, set[str]]:
    cursor = await conn.execute(
        "SELECT song_id, tag_name FROM song_tags WHERE user_id = ?;",
        (int(user_id),),
    )
    rows = await cursor.fetchall()
    tags: dict[int, set[str]] = {}
    for r in rows:
        tags.setdefault(int(r["song_id"]), set()).add(str(r["tag_name"]))
    return tags


async def song_exists(conn: aiosqlite.Connection, user_id: int, song_id: int) -> bool:
    cursor = await conn.execute(
        "SELECT 1 FROM songs WHERE user_id = ? AND id = ?;",
        (int(user_id), int(song_id)),
    )
    return await cursor.fetchone() is not None


async def get_song(conn: aiosqlite.Connection, user_id: int, song_id: int) -> Song | None:
    cursor = await conn.execute(
        f"SELECT {_SONG_COLUMNS} FROM songs s WHERE s.user_id = ? AND s.id = ?;",
        (int(user_id), int(song_id)),
    )
    row = await cursor.fetchone()
    if row is None:
        return None

    cursor = await conn.execute(
        "SELECT tag_name FROM song_tags WHERE user_id = ? AND song_id = ?;",
        (int(user_id), int(song_id)),
    )
    tag_rows = await cursor.fetchall()
    return _row_to_song(row, (str(r["tag_name"]) for r in tag_rows))


async def list_songs(
    conn: aiosqlite.Connection,
    user_id: int,
    *,
    include_tags: Iterable[str] = (),
    exclude_tags: Iterable[str] = (),
) -> dict[int, Song]:
    """
    List a user's songs, optionally filtered by tags.

    A song matches when it has every tag in `include_tags` and none of
    `exclude_tags`. Empty filters impose no constraint.
    """
    include = sorted(set(include_tags))
    exclude = sorted(set(exclude_tags))

    where = ["s.user_id = ?"]
    params: list[object] = [int(user_id)]

    if include:
        placeholders = ", ".join("?" for _ in include)
        where.append(
            f"""
            (SELECT COUNT(*) FROM song_tags st
             WHERE st.user_id = s.user_id AND st.song_id = s.id
               AND st.tag_name IN ({placeholders})) = ?
            """
        )
        params.extend(include)
        params.append(len(include))

    if exclude:
        placeholders = ", ".join("?" for _ in exclude)
        where.append(
            f"""
            NOT EXISTS (SELECT 1 FROM song_tags st
                        WHERE st.user_id = s.user_id AND st.song_id = s.id
                          AND st.tag_name IN ({placeholders}))
            """
        )
        params.extend(exclude)

    cursor = await conn.execute(
        f"SELECT {_SONG_COLUMNS} FROM songs s WHERE {' AND '.join(where)};",
        params,
    )
    rows = await cursor.fetchall()
    if not rows:
        return {}

    tags = await _tags_by_song(conn, user_id)
    return {int(r["id"]): _row_to_song(r, tags.get(int(r["id"]), ())) for r in rows}


async def upsert_song(conn: aiosqlite.Connection, user_id: int, song_id: int, song: Song) -> int:
    """
    Insert or replace a song and its tag links.

    Tag names not yet in the user's library are added as tags without type or
    description. Returns the number of tags created.
    """
    await conn.execute(
        """
        INSERT INTO songs (
            user_id, id, file_name, title, duration, track_num,
            release_date, create_date, modify_date, play_count
        ) VALUES (
            :user_id, :id, :file_name, :title, :duration, :track_num,
            :release_date, :create_date, :modify_date, :play_count
        )
        ON CONFLICT(user_id, id) DO UPDATE SET
            file_name    = excluded.file_name,
            title        = excluded.title,
            duration     = excluded.duration,
            track_num    = excluded.track_num,
            release_date = excluded.release_date,
            create_date  = excluded.create_date,
            modify_date  = excluded.modify_date,
            play_count   = excluded.play_count
        """,
        {
            "user_id": int(user_id),
            "id": int(song_id),
            "file_name": song.file_name,
            "title": song.title,
            "duration": int(song.duration),
            "track_num": song.track_num,
            "release_date": to_iso(song.release_date),
            "create_date": to_iso(song.create_date),
            "modify_date": to_iso(song.modify_date),
            "play_count": int(song.play_count),
        },
    )

    await conn.execute(
        "DELETE FROM song_tags WHERE user_id = ? AND song_id = ?;",
        (int(user_id), int(song_id)),
    )

    created = 0
    for tag_name in sorted(song.tags):
        await conn.execute(
            "INSERT INTO song_tags (user_id, song_id, tag_name) VALUES (?, ?, ?);",
            (int(user_id), int(song_id), tag_name),
        )
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO tags (user_id, name, type, description) VALUES (?, ?, NULL, NULL);",
            (int(user_id), tag_name),
        )
        created += cursor.rowcount
    return created


async def delete_song(conn: aiosqlite.Connection, user_id: int, song_id: int) -> None:
    """Delete a song; its tag links follow through ON DELETE CASCADE."""
    await conn.execute(
        "DELETE FROM songs WHERE user_id = ? AND id = ?;",
        (int(user_id), int(song_id)),
    )


async def strip_tag(conn: aiosqlite.Connection, user_id: int, tag_name: str) -> None:
    """Remove a tag name from every song of a user."""
    await conn.execute(
        "DELETE FROM song_tags WHERE user_id = ? AND tag_name = ?;",
        (int(user_id), tag_name),
    )
