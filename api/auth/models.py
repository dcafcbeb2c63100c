# api/auth/models.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from db_models.user import UserRole


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    refresh_token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserCreate(BaseModel):
    """
    New account. `full_name` is the name written into input-by and
    assigned-to on the assets this user touches.
    """
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: UserRole = UserRole.CUSTOMER


class UserUpdate(BaseModel):
    full_name: str | None = Field(None, min_length=1, max_length=255)
    role: UserRole | None = None
    is_active: bool | None = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: str
    is_active: bool
    # Unset for users rebuilt from token claims
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int


class Message(BaseModel):
    message: str
