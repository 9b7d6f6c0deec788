"""User directory lookups (the users table is owned by the account service)."""

import uuid
from typing import Optional

from services.store_service.models import UserRef
from sqlalchemy.ext.asyncio import AsyncSession


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[UserRef]:
    """Return the active user with this id, or None."""
    user = await db.get(UserRef, user_id)
    if user is None or not user.is_active:
        return None
    return user
