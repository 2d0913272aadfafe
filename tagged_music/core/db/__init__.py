"""
Internal DB subpackage for the SQLite library source.

This package splits the SQL out of `sqlite_source.py` into focused units
(schema/migrations and query groups) while keeping `SqliteLibrarySource` as the
single public interface that the rest of the codebase imports.
"""

from __future__ import annotations

from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
