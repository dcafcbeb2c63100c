# api/dashboard/models.py
"""
Pydantic models for dashboard responses.
"""
from pydantic import BaseModel


class GutSummary(BaseModel):
    """GUT (g*u*t) risk overview over the assets scored so far."""
    evaluated_count: int
    average_score: float
    low_count: int
    medium_count: int
    high_count: int


class FactoryProgress(BaseModel):
    factory: str
    total: int
    in_progress: int


class AssigneeProgress(BaseModel):
    assignee: str
    total: int
    in_progress: int
    progress_rate: float


class ProgressSummary(BaseModel):
    """
    Registration progress. `in_progress` counts assets the customer has
    handed over (pending review or approved).
    """
    total_assets: int
    in_progress_count: int
    completed_count: int
    pending_review_count: int
    progress_rate: float
    by_factory: list[FactoryProgress]
    by_assignee: list[AssigneeProgress]
