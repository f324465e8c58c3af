"""User account management: lookups, profile edits and deactivation."""

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.db import operations as ops
from cardstore.models.db import UserDB, utcnow
from cardstore.models.failure import UserNotFoundError
from cardstore.models.requests import UpdateProfileRequest, parse_request
from cardstore.models.views import UserView

logger = logging.getLogger(__name__)


async def _load_user(session: AsyncSession, user_id: int) -> UserDB:
    user = await ops.get_user(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def get_user(session: AsyncSession, user_id: int) -> UserView:
    """
    Raises:
        UserNotFoundError: If the user doesn't exist
    """
    return ops.user_to_model(await _load_user(session, user_id))


async def get_user_by_username(session: AsyncSession, username: str) -> UserView | None:
    user = await ops.get_user_by_username(session, username)
    return ops.user_to_model(user) if user else None


async def get_user_by_email(session: AsyncSession, email: str) -> UserView | None:
    user = await ops.get_user_by_email(session, email)
    return ops.user_to_model(user) if user else None


async def list_active_users(session: AsyncSession) -> list[UserView]:
    return [ops.user_to_model(u) for u in await ops.list_active_users(session)]


async def username_exists(session: AsyncSession, username: str) -> bool:
    return await ops.get_user_by_username(session, username) is not None


async def email_exists(session: AsyncSession, email: str) -> bool:
    return await ops.get_user_by_email(session, email) is not None


async def update_profile(
    session: AsyncSession,
    user_id: int,
    request: UpdateProfileRequest | Mapping[str, Any],
) -> UserView:
    """
    Update profile fields. Only fields present in the request change.

    Raises:
        UserNotFoundError: If the user doesn't exist
        ValidationFailedError: If the request is invalid
    """
    req = parse_request(UpdateProfileRequest, request)
    user = await _load_user(session, user_id)
    for name, value in req.model_dump(exclude_unset=True).items():
        setattr(user, name, value)
    user.updated_at = utcnow()
    await session.flush()
    return ops.user_to_model(user)


async def deactivate_user(session: AsyncSession, user_id: int) -> UserView:
    """
    Soft-delete a user. Their orders and collection are kept; they can no
    longer log in and existing tokens stop resolving.
    """
    user = await _load_user(session, user_id)
    user.is_active = False
    user.updated_at = utcnow()
    await session.flush()
    logger.info("USER_DEACTIVATED", extra={"user_id": user_id})
    return ops.user_to_model(user)


async def record_login(session: AsyncSession, user: UserDB) -> None:
    """Stamp the user's last successful login."""
    user.last_login_at = utcnow()
    await session.flush()
