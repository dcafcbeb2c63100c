# core/deps.py
"""
FastAPI dependencies for authentication, authorization and the asset ledger.
"""
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_session
from db_models.user import User, UserRole
from core.security import decode_token
from ledger.attachments import LocalAttachmentStore
from ledger.cache import LocalCacheMirror
from ledger.repository import AssetRepository
from ledger.store import SqlRecordStore
from ledger.sync import ChangeFeed

logger = logging.getLogger(__name__)

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Raised when user lacks required permissions."""
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


def _user_from_claims(user_id: int, payload: dict) -> User:
    """Transient (unsaved) user built from token claims."""
    return User(
        id=user_id,
        email=payload.get("email", ""),
        full_name=payload.get("name", ""),
        role=payload.get("role", UserRole.CUSTOMER.value),
        is_active=True,
    )


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: AsyncSession | None = Depends(get_session),
) -> User:
    """
    Dependency to get the current authenticated user from JWT token.

    Without a reachable user table (cache-only mode or a store outage) the
    signed token claims stand in for the user record.

    Raises:
        AuthenticationError: If token is missing, invalid, or user not found
    """
    if token is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(token)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise AuthenticationError("Invalid user ID in token")

    if db is None:
        return _user_from_claims(user_id, payload)

    try:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    except (DBAPIError, OSError):
        logger.warning("User table unreachable, authenticating user %s from token claims", user_id)
        await db.rollback()
        return _user_from_claims(user_id, payload)

    if user is None:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


# Role-based access dependencies

async def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that requires ADMIN role."""
    if not current_user.can_manage_users():
        raise AuthorizationError("Admin access required")
    return current_user


async def require_customer(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that requires CUSTOMER or ADMIN role."""
    if not current_user.can_edit_as_customer():
        raise AuthorizationError("Customer access required")
    return current_user


async def require_reviewer(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that requires REVIEWER or ADMIN role."""
    if not current_user.can_review():
        raise AuthorizationError("Reviewer access required")
    return current_user


async def require_session(
    db: AsyncSession | None = Depends(get_session),
) -> AsyncSession:
    """For endpoints that only work against the remote store (users, attachments)."""
    if db is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Remote record store is not configured",
        )
    return db


# Ledger dependencies

def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def get_cache_mirror() -> LocalCacheMirror:
    return LocalCacheMirror(settings.CACHE_DIR, settings.CACHE_NAMESPACE)


def get_attachment_store() -> LocalAttachmentStore:
    return LocalAttachmentStore(settings.UPLOAD_DIR, settings.PUBLIC_FILES_URL)


def get_repository(
    db: AsyncSession | None = Depends(get_session),
    cache: LocalCacheMirror = Depends(get_cache_mirror),
    feed: ChangeFeed = Depends(get_change_feed),
) -> AssetRepository:
    store = SqlRecordStore(db) if db is not None else None
    return AssetRepository(store, cache, feed=feed)


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
CustomerUser = Annotated[User, Depends(require_customer)]
ReviewerUser = Annotated[User, Depends(require_reviewer)]
Session = Annotated[AsyncSession, Depends(require_session)]
Repository = Annotated[AssetRepository, Depends(get_repository)]
