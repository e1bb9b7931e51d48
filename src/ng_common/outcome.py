"""Typed success-or-reason result returned by every core operation.

Policy violations (rate limit, terminal session, bad token, ...) are values,
not exceptions. `unwrap()` re-raises the carried AppError at the HTTP edge so
the app-level exception handler can render the error envelope.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from src.ng_common.errors import AppError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: AppError | None = None
    events: tuple[Any, ...] = field(default_factory=tuple)
    # True when a losing racer observed a transition someone else already made
    already_processed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(
        cls, value: T, events: tuple[Any, ...] = (), already_processed: bool = False
    ) -> "Outcome[T]":
        return cls(value=value, events=tuple(events), already_processed=already_processed)

    @classmethod
    def failure(cls, error: AppError) -> "Outcome[T]":
        return cls(error=error)
