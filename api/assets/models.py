# api/assets/models.py
"""
Pydantic models for asset endpoints.

Every write request carries `base_updated_at`: the `updated_at` of the
record as the client last saw it. It is the baseline for conflict detection.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ledger.models import Asset


class AssetEdit(BaseModel):
    """Field edits without a status change."""
    base_updated_at: datetime
    changes: dict[str, Any] = Field(default_factory=dict)


class SubmitRequest(BaseModel):
    """Customer submit; `changes` are saved in the same write."""
    base_updated_at: datetime
    changes: dict[str, Any] = Field(default_factory=dict)


class ApproveRequest(BaseModel):
    """Reviewer approval with the GUT scores (if not already set)."""
    base_updated_at: datetime
    g: int | None = None
    u: int | None = None
    t: int | None = None
    comment: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude={"base_updated_at"}, exclude_unset=True)


class RejectRequest(BaseModel):
    base_updated_at: datetime
    comment: str = ""


class BulkSubmitRequest(BaseModel):
    asset_ids: list[str] = Field(..., min_length=1)


class BulkFailure(BaseModel):
    asset_id: str
    message: str
    field_errors: dict[str, str] = Field(default_factory=dict)
    # Set when another device changed the asset first; `asset` is the stored record
    conflict: bool = False
    asset: Asset | None = None


class BulkSubmitResult(BaseModel):
    submitted: list[Asset]
    failed: list[BulkFailure]
    offline: bool = False


class ImportResult(BaseModel):
    imported_count: int
    downgraded_count: int = 0
    offline: bool = False
    assets: list[Asset]


class ConflictResponse(BaseModel):
    """409 body: the store's current record, which the client should reload."""
    conflict: bool = True
    asset: Asset
