# ledger/models.py
"""
Domain types shared by the workflow core.

`Asset` is the record the whole workflow revolves around. Its `updated_at`
doubles as the optimistic concurrency token: a candidate carries the
`updated_at` it was read with (the baseline) until the store stamps a new one.
"""
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class AssetStatus(str, Enum):
    UNFILLED = "unfilled"
    PENDING_REVIEW = "pending-review"
    APPROVED = "approved"
    REJECTED = "rejected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite, legacy cache files) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Asset(BaseModel):
    id: str
    asset_number: str

    # Immutable reference fields
    equipment_name: str = ""
    acquisition_date: str = ""
    acquisition_amount: int | None = None
    lifespan_years: int | None = None
    factory: str = ""

    # Customer fields
    catalog_name: str = ""
    description: str = ""
    attachments: list[str] = Field(default_factory=list)
    building: str = ""
    floor: str = ""

    # Reviewer fields
    g: int | None = Field(None, ge=1, le=5)
    u: int | None = Field(None, ge=1, le=5)
    t: int | None = Field(None, ge=1, le=5)
    comment: str = ""

    # Workflow fields
    status: AssetStatus = AssetStatus.UNFILLED
    updated_at: datetime = Field(default_factory=utcnow)
    input_by: str = ""
    assigned_to: str = ""

    @field_validator("updated_at")
    @classmethod
    def _normalize_updated_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    def content(self) -> dict:
        """Field values without the concurrency token."""
        return self.model_dump(exclude={"updated_at"})


class SaveOutcome(BaseModel):
    """
    Result of a single-record write.

    - conflict: the store held a newer record; `asset` is that record and the
      caller's edit was not applied.
    - offline: the store was unreachable; `asset` was written to the local
      cache mirror only.
    """
    asset: Asset
    conflict: bool = False
    offline: bool = False
