"""Best-effort sub-lookup results.

Every optional signal the engine consults (database overlay, regional rules,
legal citations, community proofs) returns a LookupResult so that "returned
no data" and "failed" are both representable without exceptions crossing
component boundaries. Only snapshot persistence raises.
"""

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from buildpass.core.logging import log_lookup_degraded

T = TypeVar("T")


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "LookupResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, default: T, exc: Exception) -> "LookupResult[T]":
        return cls(value=default, error=f"{type(exc).__name__}: {exc}")


def best_effort(source: str, fn: Callable[[], T], default: T) -> LookupResult[T]:
    """Run ``fn`` and reduce any exception to ``default`` with the error recorded."""
    try:
        return LookupResult.success(fn())
    except Exception as e:
        log_lookup_degraded(source, e)
        return LookupResult.failure(default, e)
