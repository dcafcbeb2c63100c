# ledger/gut.py
"""
GUT (Gravity x Urgency x Tendency) scoring. Reporting only; the workflow
never branches on the band.
"""
from enum import Enum

from ledger.models import Asset


class RiskBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def gut_score(asset: Asset) -> int | None:
    """g*u*t, or None until all three scores are set."""
    if asset.g is None or asset.u is None or asset.t is None:
        return None
    return asset.g * asset.u * asset.t


def risk_band(score: int) -> RiskBand:
    if score <= 4:
        return RiskBand.LOW
    if score <= 6:
        return RiskBand.MEDIUM
    return RiskBand.HIGH


def summarize(assets: list[Asset]) -> dict:
    scores = [score for score in (gut_score(asset) for asset in assets) if score is not None]
    bands = {band: 0 for band in RiskBand}
    for score in scores:
        bands[risk_band(score)] += 1

    return {
        "evaluated_count": len(scores),
        "average_score": round(sum(scores) / len(scores), 1) if scores else 0.0,
        "low_count": bands[RiskBand.LOW],
        "medium_count": bands[RiskBand.MEDIUM],
        "high_count": bands[RiskBand.HIGH],
    }
