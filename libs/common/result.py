"""Result type returned by core store operations.

Operations never raise for expected failures (missing rows, bad input, illegal
state changes). They return a ``ServiceResult`` whose ``error`` names the
failure kind so callers have to branch on it explicitly:

    result = await cancel_order(db, order_id, reason="...", actor_id=..., actor_role=...)
    if not result.ok:
        ...  # result.error.kind, result.error.message, result.error.context
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    EXTERNAL = "external"


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, **context: Any
    ) -> "ServiceResult[T]":
        return cls(error=ServiceError(kind=kind, message=message, context=context))

    @classmethod
    def from_error(cls, error: ServiceError) -> "ServiceResult[T]":
        """Re-wrap another result's error under a different value type."""
        return cls(error=error)
