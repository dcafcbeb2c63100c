# ledger/workflow.py
"""
Asset workflow state machine.

    unfilled ──submit──▶ pending-review ──approve──▶ approved
        ▲                    │
        │                    └──reject──▶ rejected ──submit──▶ pending-review
        └── (rejected assets are editable by the customer like unfilled ones)

Every operation here is pure: it takes the current record plus the caller's
role and returns a candidate record. Nothing is written; the candidate keeps
the `updated_at` it was built from so the conflict policy can compare it with
the store. Authorization is checked before any field is touched, so the same
rules hold for every client.
"""
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ledger.models import Asset, AssetStatus

logger = logging.getLogger(__name__)


class WorkflowRole(str, Enum):
    CUSTOMER = "customer"
    REVIEWER = "reviewer"


# Never editable through the workflow, by anyone
IMMUTABLE_FIELDS = frozenset({
    "id",
    "asset_number",
    "equipment_name",
    "acquisition_date",
    "acquisition_amount",
    "lifespan_years",
    "factory",
})

# Owned by transitions / the store, not by edits
WORKFLOW_FIELDS = frozenset({"status", "updated_at", "input_by", "assigned_to"})

# Changed only through the attachment endpoints, which keep the files in step
ATTACHMENT_FIELDS = frozenset({"attachments"})

CUSTOMER_FIELDS = frozenset({"catalog_name", "description", "building", "floor"})
REVIEWER_FIELDS = frozenset({"g", "u", "t", "comment"})

_EDITABLE = {
    WorkflowRole.CUSTOMER: (CUSTOMER_FIELDS, frozenset({AssetStatus.UNFILLED, AssetStatus.REJECTED})),
    WorkflowRole.REVIEWER: (REVIEWER_FIELDS, frozenset({AssetStatus.PENDING_REVIEW})),
}


class WorkflowError(Exception):
    """Base class for workflow rejections. Raised before any write."""
    pass


class WorkflowPermissionError(WorkflowError):
    """Raised when the role may not change these fields or run this action."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class InvalidTransitionError(WorkflowError):
    """Raised when the action is not legal from the asset's current status."""
    pass


class WorkflowValidationError(WorkflowError):
    """Raised when a guard fails. `field_errors` maps field name to message."""

    def __init__(self, field_errors: dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in field_errors.items()))
        self.field_errors = field_errors


# --- Guards ---

def _location_filled(asset: Asset) -> dict[str, str]:
    errors = {}
    if not asset.building.strip():
        errors["building"] = "Building is required before submission"
    if not asset.floor.strip():
        errors["floor"] = "Floor is required before submission"
    return errors


def _gut_complete(asset: Asset) -> dict[str, str]:
    errors = {}
    for name in ("g", "u", "t"):
        value = getattr(asset, name)
        if value is None or not 1 <= value <= 5:
            errors[name] = f"{name.upper()} score (1-5) is required for approval"
    return errors


def _has_comment(asset: Asset) -> dict[str, str]:
    if not asset.comment.strip():
        return {"comment": "A comment is required to reject an asset"}
    return {}


@dataclass(frozen=True)
class Transition:
    """A legal status change."""
    from_state: AssetStatus
    to_state: AssetStatus
    action: str
    role: WorkflowRole
    guard: Callable[[Asset], dict[str, str]]


TRANSITIONS = (
    Transition(AssetStatus.UNFILLED, AssetStatus.PENDING_REVIEW, "submit", WorkflowRole.CUSTOMER, _location_filled),
    Transition(AssetStatus.REJECTED, AssetStatus.PENDING_REVIEW, "submit", WorkflowRole.CUSTOMER, _location_filled),
    Transition(AssetStatus.PENDING_REVIEW, AssetStatus.APPROVED, "approve", WorkflowRole.REVIEWER, _gut_complete),
    Transition(AssetStatus.PENDING_REVIEW, AssetStatus.REJECTED, "reject", WorkflowRole.REVIEWER, _has_comment),
)


def find_transition(status: AssetStatus, action: str) -> Transition:
    for candidate in TRANSITIONS:
        if candidate.from_state == status and candidate.action == action:
            return candidate
    raise InvalidTransitionError(
        f"Cannot {action} an asset in status '{status.value}'"
    )


# --- Field authorization ---

def editable_fields(status: AssetStatus, role: WorkflowRole) -> frozenset[str]:
    """Fields `role` may change while the asset is in `status`."""
    fields, states = _EDITABLE[role]
    return fields if status in states else frozenset()


def authorize_changes(asset: Asset, role: WorkflowRole, changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Check that every field whose value actually changes is editable.

    Returns only the effective changes. Fields sent with their current value
    are ignored, so clients may post back whole records.
    """
    effective = {
        name: value
        for name, value in changes.items()
        if name not in Asset.model_fields or getattr(asset, name) != value
    }
    if not effective:
        return {}

    unknown = sorted(name for name in effective if name not in Asset.model_fields)
    if unknown:
        raise WorkflowPermissionError(f"Unknown fields: {', '.join(unknown)}", unknown)

    immutable = sorted(name for name in effective if name in IMMUTABLE_FIELDS | WORKFLOW_FIELDS)
    if immutable:
        raise WorkflowPermissionError(
            f"Fields cannot be edited: {', '.join(immutable)}", immutable
        )

    attached = sorted(name for name in effective if name in ATTACHMENT_FIELDS)
    if attached:
        raise WorkflowPermissionError(
            "Attachments are changed through the attachment endpoints", attached
        )

    allowed = editable_fields(asset.status, role)
    denied = sorted(name for name in effective if name not in allowed)
    if denied:
        raise WorkflowPermissionError(
            f"{role.value} may not edit {', '.join(denied)} "
            f"while the asset is '{asset.status.value}'",
            denied,
        )
    return effective


def _apply(asset: Asset, changes: dict[str, Any]) -> Asset:
    if not changes:
        return asset
    data = asset.model_dump()
    data.update(changes)
    try:
        return Asset.model_validate(data)
    except ValidationError as exc:
        field_errors = {
            ".".join(str(part) for part in err["loc"]): err["msg"]
            for err in exc.errors()
        }
        raise WorkflowValidationError(field_errors) from exc


# --- Operations ---

def edit(asset: Asset, role: WorkflowRole, changes: Mapping[str, Any]) -> Asset:
    """Change editable fields without a status transition."""
    effective = authorize_changes(asset, role, changes)
    return _apply(asset, effective)


def _run(asset: Asset, action: str, role: WorkflowRole, changes: Mapping[str, Any] | None) -> Asset:
    transition = find_transition(asset.status, action)
    if transition.role != role:
        raise WorkflowPermissionError(f"Only the {transition.role.value} may {action} an asset")

    candidate = edit(asset, role, changes or {})

    errors = transition.guard(candidate)
    if errors:
        raise WorkflowValidationError(errors)

    logger.debug(
        "Asset %s: %s -> %s (%s)",
        asset.id, transition.from_state.value, transition.to_state.value, action,
    )
    return candidate.model_copy(update={"status": transition.to_state})


def submit(asset: Asset, role: WorkflowRole, changes: Mapping[str, Any] | None = None) -> Asset:
    """Customer (re)submits for review, optionally saving field edits in the same write."""
    return _run(asset, "submit", role, changes)


def approve(asset: Asset, role: WorkflowRole, changes: Mapping[str, Any] | None = None) -> Asset:
    """Reviewer approves; GUT scores may be supplied in `changes`."""
    return _run(asset, "approve", role, changes)


def reject(asset: Asset, role: WorkflowRole, comment: str, changes: Mapping[str, Any] | None = None) -> Asset:
    """Reviewer rejects with a mandatory comment; the asset returns to the customer."""
    merged = dict(changes or {})
    merged["comment"] = comment
    return _run(asset, "reject", role, merged)


def authorize_attachment_change(asset: Asset, role: WorkflowRole) -> None:
    """Attachments change only while the customer may edit the record."""
    if role != WorkflowRole.CUSTOMER or not editable_fields(asset.status, role):
        raise WorkflowPermissionError(
            f"{role.value} may not change attachments while the asset is '{asset.status.value}'",
            ["attachments"],
        )


def check_invariants(asset: Asset) -> dict[str, str]:
    """
    Field errors for a record that claims a status it could not have reached.

    Used on imported data, which does not go through transitions.
    """
    if asset.status == AssetStatus.UNFILLED:
        return {}
    errors = _location_filled(asset)
    if asset.status == AssetStatus.APPROVED:
        errors.update(_gut_complete(asset))
    return errors
