"""
Error taxonomy for the simulation engine boundary.

Expected failures are plain values carried inside `Err` (see ecosim.result)
rather than raised exceptions, so callers branch on an explicit type:

- ValidationError: a species/environment/interaction/state rule was violated.
  Always caller-fixable, never retried internally.
- ConflictError: illegal state-machine transition or a stale version at save
  time. The caller should re-fetch and retry.
- NotFoundError: unknown simulation id, or one not owned by the caller.
- InternalError: persistence I/O failure or unexpected invariant breach.
  Details are logged, the caller only sees an opaque message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class ValidationError:
    """A rule violation naming the offending field, the rule and the value."""

    field: str
    rule: str
    value: Any = None
    message: str = ""
    code: str = "VALIDATION_ERROR"

    def __str__(self) -> str:
        return f"{self.field}: {self.message or self.rule} (value={self.value!r})"


@dataclass(frozen=True, slots=True)
class ConflictError:
    """Operation not legal in the current status, or version mismatch."""

    current_status: str
    attempted_operation: str
    message: str = ""
    code: str = "CONFLICT"

    def __str__(self) -> str:
        detail = self.message or "operation not allowed in this state"
        return f"{self.attempted_operation} rejected while {self.current_status}: {detail}"


@dataclass(frozen=True, slots=True)
class NotFoundError:
    """Unknown simulation id (or not visible to the caller)."""

    id: str
    code: str = "NOT_FOUND"

    def __str__(self) -> str:
        return f"Simulation '{self.id}' not found"


@dataclass(frozen=True, slots=True)
class InternalError:
    """Opaque failure; the underlying cause is logged, never exposed."""

    message: str = "Internal simulation error"
    code: str = "INTERNAL_ERROR"
    # Kept for in-process diagnostics only; excluded from equality and repr.
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return self.message


EngineError = Union[ValidationError, ConflictError, NotFoundError, InternalError]


class ResultUnwrapError(Exception):
    """Raised by Result.unwrap() when called on an Err."""

    def __init__(self, error: EngineError) -> None:
        self.error = error
        super().__init__(f"[{error.code}] {error}")
