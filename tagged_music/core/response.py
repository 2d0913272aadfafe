"""
Uniform result wrapper returned by every library source operation.

Callers branch on `Response.status` instead of catching exceptions. Expected
conditions (unknown user on a mutation, duplicate username) become
`BAD_REQUEST`; transient backend failures become `CONNECTION_ISSUE` or
`TIME_OUT`. Programming defects still raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

R = TypeVar("R")


class Status(Enum):
    """Outcome of a library source operation."""

    SUCCESS = "success"
    BAD_REQUEST = "bad_request"
    CONNECTION_ISSUE = "connection_issue"
    TIME_OUT = "time_out"


@dataclass(frozen=True, slots=True)
class Response(Generic[R]):
    result: R
    status: Status

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def success(cls, result: R) -> Response[R]:
        return cls(result, Status.SUCCESS)

    @classmethod
    def bad_request(cls, result: R) -> Response[R]:
        return cls(result, Status.BAD_REQUEST)
