"""Discriminated result type returned by every public engine operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import EngineError, ResultUnwrapError

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome wrapping a value."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome wrapping one of the engine error values."""

    error: E

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise ResultUnwrapError(self.error)


Result = Union[Ok[T], Err[EngineError]]
