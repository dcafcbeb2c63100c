# api/dashboard/db_manager.py
"""
Business logic for dashboard statistics.
"""
from ledger import gut
from ledger.models import Asset, AssetStatus
from ledger.repository import AssetRepository

HANDED_OVER = (AssetStatus.PENDING_REVIEW, AssetStatus.APPROVED)


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


async def get_gut_summary(repo: AssetRepository) -> dict:
    return gut.summarize(await repo.fetch_all())


def progress_stats(assets: list[Asset]) -> dict:
    """
    Totals plus per-factory and per-assignee breakdowns, in order of first
    appearance.
    """
    total = len(assets)
    in_progress = sum(1 for asset in assets if asset.status in HANDED_OVER)

    factories: dict[str, dict] = {}
    assignees: dict[str, dict] = {}
    for asset in assets:
        handed_over = asset.status in HANDED_OVER

        factory = factories.setdefault(asset.factory, {"factory": asset.factory, "total": 0, "in_progress": 0})
        factory["total"] += 1
        factory["in_progress"] += handed_over

        name = asset.assigned_to or asset.input_by
        assignee = assignees.setdefault(name, {"assignee": name, "total": 0, "in_progress": 0})
        assignee["total"] += 1
        assignee["in_progress"] += handed_over

    for assignee in assignees.values():
        assignee["progress_rate"] = _rate(assignee["in_progress"], assignee["total"])

    return {
        "total_assets": total,
        "in_progress_count": in_progress,
        "completed_count": sum(1 for asset in assets if asset.status == AssetStatus.APPROVED),
        "pending_review_count": sum(1 for asset in assets if asset.status == AssetStatus.PENDING_REVIEW),
        "progress_rate": _rate(in_progress, total),
        "by_factory": list(factories.values()),
        "by_assignee": list(assignees.values()),
    }


async def get_progress_summary(repo: AssetRepository) -> dict:
    return progress_stats(await repo.fetch_all())
