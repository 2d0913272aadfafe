"""
Tagged Music - a multi-tenant metadata store for personal music libraries.

Every user owns an independent collection of songs, tags, tag types and
free-form data entries. All access goes through the `LibrarySource` contract,
which both the in-memory reference backend and the SQLite backend implement.
"""

__version__ = "0.1.0"
__author__ = "Tagged Music Contributors"
__license__ = "MIT"

from tagged_music.core.response import Response, Status
from tagged_music.core.source import LIBRARY_VERSION, LibrarySource

__all__ = ["LIBRARY_VERSION", "LibrarySource", "Response", "Status", "__version__"]
