"""Outcome type for transfer operations whose refusal is an expected case."""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a refusal.

    ``error`` is copy the user may see; ``error_code`` is what callers branch on.
    """

    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, code: str) -> "Result[T]":
        return cls(error=error, error_code=code)

    def unwrap_or_raise(self, exc_factory: Callable[[str], Exception]) -> T:
        if not self.ok:
            raise exc_factory(self.error or self.error_code)
        return self.value
