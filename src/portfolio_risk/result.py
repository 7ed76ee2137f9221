"""Discriminated result values returned by the public entry points."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from .common.enums import _CoercibleEnum
from .errors import PortfolioEngineError

T = TypeVar("T")


class ErrorKind(_CoercibleEnum):
    NUMERIC_DEGENERACY = "numeric_degeneracy"
    SINGULAR_MATRIX = "singular_matrix"
    ALLOCATION_INTEGRITY = "allocation_integrity"
    IDENTICAL_METRICS = "identical_metrics"
    EXTREME_CORRELATION = "extreme_correlation"
    INVALID_INPUT = "invalid_input"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful computation with advisory warnings attached."""

    value: T
    warnings: tuple[str, ...] = ()

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed computation. ``details`` carries analytics that remain available."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise PortfolioEngineError(f"{self.kind}: {self.message}")

    @classmethod
    def from_exception(cls, exc: PortfolioEngineError, **details: Any) -> "Err":
        kind = ErrorKind.coerce(exc.kind) or ErrorKind.NUMERIC_DEGENERACY
        return cls(kind=kind, message=exc.user_message, details=dict(details))


Result = Union[Ok[T], Err]
