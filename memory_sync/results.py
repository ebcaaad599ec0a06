"""
Explicit result values for per-item work.

A unit of work returns `Ok(value)` or `Err(error)`; the transaction executor
checks the branch before committing. Unexpected exceptions come back as
`Err(Unmanaged(...))`.
"""
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def is_ok(self) -> bool:
        return False


@dataclass(frozen=True)
class Unmanaged:
    """An exception nobody anticipated, caught at the item boundary."""
    item_id: str
    cause: BaseException

    def __str__(self) -> str:
        return f"Unmanaged failure for {self.item_id}: {self.cause!r}"


Result = Union[Ok[Any], Err[Any]]
