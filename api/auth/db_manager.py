# api/auth/db_manager.py
"""
User account operations behind the auth endpoints.

Accounts are never deleted: `full_name` is copied onto the assets a user
entered or was assigned, so deactivation only blocks further logins.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import get_password_hash, verify_password
from db_models.user import User
from .models import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class InvalidCredentialsError(Exception):
    pass


class InactiveUserError(Exception):
    pass


class UserNotFoundError(Exception):
    pass


class EmailTakenError(Exception):
    pass


async def find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """Check credentials and stamp `last_login_at`."""
    user = await find_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError("Incorrect email or password")
    if not user.is_active:
        raise InactiveUserError("User account is disabled")

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    logger.info("User %s (%s) logged in", user.id, user.role)
    return user


async def get_active_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise InactiveUserError("User not found or inactive")
    return user


async def change_password(db: AsyncSession, user_id: int, current: str, new: str) -> None:
    user = await get_user(db, user_id)
    if not verify_password(current, user.hashed_password):
        raise InvalidCredentialsError("Current password is incorrect")
    user.hashed_password = get_password_hash(new)
    await db.commit()


async def list_users(db: AsyncSession, skip: int, limit: int) -> tuple[list[User], int]:
    total = (await db.execute(select(func.count(User.id)))).scalar() or 0
    result = await db.execute(select(User).order_by(User.id.asc()).offset(skip).limit(limit))
    return list(result.scalars().all()), total


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    if await find_by_email(db, data.email) is not None:
        raise EmailTakenError("Email already registered")

    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        full_name=data.full_name,
        role=data.role.value,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created %s account %s", user.role, user.email)
    return user


async def update_user(db: AsyncSession, user_id: int, updates: UserUpdate) -> User:
    user = await get_user(db, user_id)
    changes = updates.model_dump(exclude_unset=True, exclude_none=True)
    if "role" in changes:
        changes["role"] = updates.role.value
    for name, value in changes.items():
        setattr(user, name, value)

    await db.commit()
    await db.refresh(user)
    return user


async def deactivate_user(db: AsyncSession, user_id: int) -> User:
    user = await get_user(db, user_id)
    user.is_active = False
    await db.commit()
    logger.info("Deactivated user %s", user_id)
    return user
