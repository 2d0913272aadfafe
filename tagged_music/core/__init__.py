"""
Core domain package.

This package contains the storage contract and its backends. It knows nothing
about transport, authentication or process lifecycle: callers hand in a user id
that was authenticated elsewhere and receive a `Response` back.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `tagged_music.core.memory`).
"""

from __future__ import annotations

__all__: list[str] = [
    "ConfigError",
    "CoreError",
    "InvariantError",
    "StoreConnectionError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class ConfigError(CoreError):
    """Raised when the store configuration is missing or invalid."""


class InvariantError(CoreError):
    """
    Raised when a backend detects that its own data violates a store invariant.

    This is a programming defect, never an expected outcome, so it is not mapped
    onto a `Response` status.
    """


class StoreConnectionError(CoreError):
    """Raised when a persistent library source cannot open its database."""
