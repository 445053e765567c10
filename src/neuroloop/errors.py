"""Structured error codes and exception classes for neuroloop.

Engine functions are total over their inputs and never raise for missing
data. These errors cover the few caller-facing failures: unknown plan ids
in strict mode, stale optimistic-concurrency writes, unknown users and
missing or malformed state files.
"""

from __future__ import annotations

__all__ = [
    "ErrorCode",
    "NeuroloopError",
    "UnknownPlanError",
    "StaleStateError",
    "ErrorResponse",
]

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    UNKNOWN_PLAN = "UNKNOWN_PLAN"
    STALE_STATE = "STALE_STATE"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class NeuroloopError(Exception):
    """Structured application error carrying a code and a details dict."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details: dict = details or {}


class UnknownPlanError(NeuroloopError):
    """Plan identifier not present in the static plan table."""

    def __init__(self, plan_id: str) -> None:
        super().__init__(
            ErrorCode.UNKNOWN_PLAN,
            f"Unknown plan: {plan_id!r}",
            {"plan_id": plan_id},
        )


class StaleStateError(NeuroloopError):
    """A compare-and-swap write lost the race against another writer."""

    def __init__(self, user_id: str, record: str, expected: int, actual: int) -> None:
        super().__init__(
            ErrorCode.STALE_STATE,
            f"Stale {record} write for user {user_id}: expected version {expected}, found {actual}",
            {"user_id": user_id, "record": record, "expected": expected, "actual": actual},
        )


class ErrorResponse(BaseModel):
    """Serialisable envelope for JSON error output from the CLI."""

    error: dict  # {code: str, message: str, details: dict}

    @classmethod
    def from_neuroloop_error(cls, exc: NeuroloopError) -> "ErrorResponse":
        return cls(error={"code": exc.code.value, "message": exc.message, "details": exc.details})
