"""Tagged outcome types.

Provider attempts and per-candidate plan building return ``Ok`` or ``Err``
instead of mixing exceptions with half-filled objects, so a degraded outcome
has to be unpacked explicitly before it can be used.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome with a machine-readable kind and a human detail."""

    kind: str
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}" if self.detail else self.kind


Result = Union[Ok[T], Err]
