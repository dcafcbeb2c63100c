# db_models/user.py
"""
Ledger accounts.

ADMIN manages accounts and may stand in for either side of the workflow.
CUSTOMER registers assets and fills in location and catalog data.
REVIEWER scores GUT and approves or rejects submitted assets.
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    REVIEWER = "REVIEWER"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN (" + ", ".join(f"'{r.value}'" for r in UserRole) + ")",
            name="role",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    # Copied into Asset.input_by / assigned_to
    full_name: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default=UserRole.CUSTOMER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} {self.role}>"

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def is_reviewer(self) -> bool:
        return self.role == UserRole.REVIEWER.value

    def can_edit_as_customer(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.CUSTOMER.value)

    def can_review(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.REVIEWER.value)

    def can_manage_users(self) -> bool:
        return self.is_admin()
