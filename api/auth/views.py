# api/auth/views.py
"""
Login, token refresh and user administration.

Everything here reads or writes the user table, so it answers 503 in
cache-only mode. Tokens issued before the outage keep authenticating
through their claims (see core.deps).
"""
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from core.deps import AdminUser, CurrentUser, Session
from core.security import (
    create_access_token,
    create_refresh_token,
    token_claims,
    verify_token_type,
)
from db_models.user import User
from .models import (
    Token,
    TokenRefresh,
    LoginRequest,
    UserCreate,
    UserUpdate,
    PasswordChange,
    UserResponse,
    UserListResponse,
    Message,
)
from . import db_manager

router = APIRouter(prefix="/auth", tags=["authentication"])


@contextmanager
def account_errors():
    try:
        yield
    except db_manager.InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except db_manager.InactiveUserError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except db_manager.UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except db_manager.EmailTakenError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


def issue_tokens(user: User) -> Token:
    claims = token_claims(user)
    return Token(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


@router.post("/login", response_model=Token, summary="Login and get tokens")
async def login(
    db: Session,
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> Token:
    """OAuth2 password flow; `username` carries the email."""
    with account_errors():
        user = await db_manager.authenticate(db, form_data.username, form_data.password)
    return issue_tokens(user)


@router.post("/login/json", response_model=Token, summary="Login with JSON body")
async def login_json(credentials: LoginRequest, db: Session) -> Token:
    with account_errors():
        user = await db_manager.authenticate(db, credentials.email, credentials.password)
    return issue_tokens(user)


@router.post("/refresh", response_model=Token, summary="Refresh access token")
async def refresh_token(request: TokenRefresh, db: Session) -> Token:
    payload = verify_token_type(request.refresh_token, "refresh")
    try:
        user_id = int(payload["sub"]) if payload else None
    except (KeyError, ValueError, TypeError):
        user_id = None
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    # Claims are rebuilt from the row: role or name may have changed
    with account_errors():
        user = await db_manager.get_active_user(db, user_id)
    return issue_tokens(user)


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.post("/me/password", response_model=Message, summary="Change password")
async def change_password(request: PasswordChange, current_user: CurrentUser, db: Session) -> Message:
    try:
        await db_manager.change_password(
            db, current_user.id, request.current_password, request.new_password
        )
    except db_manager.InvalidCredentialsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except db_manager.UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Message(message="Password changed")


# Administration

@router.get("/users", response_model=UserListResponse, summary="List users (admin)")
async def list_users(admin: AdminUser, db: Session, skip: int = 0, limit: int = 100) -> UserListResponse:
    users, total = await db_manager.list_users(db, skip, limit)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], total=total)


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user (admin)",
)
async def create_user(user_data: UserCreate, admin: AdminUser, db: Session) -> UserResponse:
    with account_errors():
        user = await db_manager.create_user(db, user_data)
    return UserResponse.model_validate(user)


@router.put("/users/{user_id}", response_model=UserResponse, summary="Update user (admin)")
async def update_user(user_id: int, updates: UserUpdate, admin: AdminUser, db: Session) -> UserResponse:
    with account_errors():
        user = await db_manager.update_user(db, user_id, updates)
    return UserResponse.model_validate(user)


@router.delete("/users/{user_id}", response_model=Message, summary="Deactivate user (admin)")
async def deactivate_user(user_id: int, admin: AdminUser, db: Session) -> Message:
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate yourself",
        )
    with account_errors():
        await db_manager.deactivate_user(db, user_id)
    return Message(message="User deactivated")
