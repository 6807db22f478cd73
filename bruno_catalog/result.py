"""Stage result type used at every pipeline boundary."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .errors import CatalogError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def err(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(kind=kind, message=message)

    @classmethod
    def from_error(cls, exc: CatalogError) -> "Result[T]":
        return cls(kind=exc.kind, message=str(exc))

    @property
    def is_ok(self) -> bool:
        return self.kind is None
