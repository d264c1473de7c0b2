from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .exceptions import DomainError, ErrorCode

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a public operation: either a value or an error code with a message."""

    value: Optional[T] = None
    error: Optional[ErrorCode] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode, message: str) -> "Result[T]":
        return cls(error=error, message=message)

    @classmethod
    def from_error(cls, exc: DomainError) -> "Result[T]":
        return cls(error=exc.code, message=str(exc))

    def unwrap(self) -> T:
        if self.error is not None:
            raise ValueError(f"{self.error.value}: {self.message}")
        return self.value  # type: ignore[return-value]
