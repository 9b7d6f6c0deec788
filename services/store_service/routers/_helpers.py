"""Shared helper functions for store routers."""

from typing import Optional, TypeVar

from fastapi import HTTPException, status
from libs.auth.models import AuthUser
from libs.common.result import ErrorKind, ServiceResult
from services.store_service.models import ActorRole

T = TypeVar("T")

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INSUFFICIENT_STOCK: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.EXTERNAL: status.HTTP_502_BAD_GATEWAY,
}


def unwrap(result: ServiceResult[T]) -> T:
    """Return the result's value or raise the matching HTTPException."""
    if result.ok:
        return result.value
    error = result.error
    raise HTTPException(
        status_code=_STATUS_BY_KIND[error.kind],
        detail={"code": error.kind.value, "message": error.message, **error.context},
    )


def actor_role(user: Optional[AuthUser]) -> ActorRole:
    if user is not None and user.is_admin:
        return ActorRole.ADMIN
    return ActorRole.CUSTOMER


def actor_id(user: Optional[AuthUser]):
    return user.user_id if user is not None else None
