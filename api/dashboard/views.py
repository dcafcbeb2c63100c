# api/dashboard/views.py
"""
Dashboard and aggregate statistics endpoints.
"""
from fastapi import APIRouter

from core.deps import CurrentUser, Repository
from .models import GutSummary, ProgressSummary
from . import db_manager

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get(
    "/gut",
    response_model=GutSummary,
    summary="GUT risk summary",
)
async def get_gut_dashboard_endpoint(
    current_user: CurrentUser,
    repo: Repository,
) -> GutSummary:
    """
    Average g*u*t score and risk bands (low <= 4, medium 5-6, high >= 7)
    over every asset with all three scores set.
    """
    summary = await db_manager.get_gut_summary(repo)
    return GutSummary(**summary)


@router.get(
    "/progress",
    response_model=ProgressSummary,
    summary="Registration progress",
)
async def get_progress_dashboard_endpoint(
    current_user: CurrentUser,
    repo: Repository,
) -> ProgressSummary:
    stats = await db_manager.get_progress_summary(repo)
    return ProgressSummary(**stats)
