"""
Hierarchy service — the host-side adapter around the hierarchy engine.

Routes and CLI commands call this module; it fetches snapshots through
the API client, builds forests, runs drag-and-drop gestures with the
application's shared ``PendingOperationTracker``, re-fetches after every
dispatched gesture, and records the outcome in the audit trail.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from orgchart.extensions import db
from orgchart.models.organization import Department, Position, TreeNode, forest_ids
from orgchart.services import audit_service, export_service
from orgchart.services.errors import AuthoritativeFailure, OrgApiError
from orgchart.services.identifiers import normalize
from orgchart.services.org_api_client import OrgStructureApiClient
from orgchart.services.pending import PendingOperationTracker
from orgchart.services.reparent import (
    ASSIGN_HEAD,
    ASSIGN_REPORTING,
    ReparentOperation,
    ReparentResult,
)
from orgchart.services.tree_builder import build_forest, direct_reports, reporting_chain

logger = logging.getLogger(__name__)

# fmt -> (mimetype, file extension)
EXPORT_FORMATS: dict[str, tuple[str, str]] = {
    "csv": ("text/csv; charset=utf-8", "csv"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    "json": ("application/json", "json"),
}


@dataclass
class DepartmentTree:
    """A department snapshot and the forest built from it."""

    department: Department
    positions: list[Position]
    forest: list[TreeNode] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "department": self.department.to_dict(),
            "position_count": len(forest_ids(self.forest)),
            "trees": [tree.to_dict() for tree in self.forest],
        }


@dataclass
class GestureOutcome:
    """What a gesture did, plus the tree as re-read afterwards."""

    result: ReparentResult
    tree: DepartmentTree | None

    def to_dict(self) -> dict[str, Any]:
        payload = self.result.to_dict()
        payload["tree"] = self.tree.to_dict() if self.tree else None
        return payload


# =========================================================================
# Collaborators
# =========================================================================

def get_client() -> OrgStructureApiClient:
    """Return an API client configured from the current app."""
    return OrgStructureApiClient()


def get_tracker() -> PendingOperationTracker:
    """Return the application's shared in-flight tracker."""
    return current_app.extensions["pending_operations"]


# =========================================================================
# Reads
# =========================================================================

def list_departments(active_only: bool = True) -> list[Department]:
    """Return departments from the API, optionally only active ones."""
    return get_client().get_departments(is_active=True if active_only else None)


def load_department_tree(department_id: Any, client: OrgStructureApiClient | None = None) -> DepartmentTree:
    """Fetch a fresh department snapshot and build its position forest."""
    client = client or get_client()
    department = client.get_department(department_id)
    positions = client.get_positions_by_department(department_id)
    forest = build_forest(positions, department.id, department.head_position_id)

    orphans = sum(1 for tree in forest if tree.is_orphan_root)
    if orphans:
        logger.info(
            "Department %s: %d orphan tree(s) reconciled",
            department.key,
            orphans,
        )
    return DepartmentTree(department=department, positions=positions, forest=forest)


def get_reporting_lines(department_id: Any, position_id: Any) -> dict[str, Any]:
    """
    Return who a position reports to (up to the root) and who reports to it.

    Raises:
        LookupError: If the position is not an active member of the department.
    """
    positions = get_client().get_positions_by_department(department_id)
    key = normalize(position_id)
    by_id = {p.key: p for p in positions if p.is_active}
    if key not in by_id:
        raise LookupError(f"Position {key} not found in department {normalize(department_id)}")

    return {
        "position_id": key,
        "reporting_chain": reporting_chain(key, by_id.values()),
        "direct_reports": [
            {"id": p.key, "code": p.code, "title": p.title}
            for p in direct_reports(key, positions)
        ],
    }


# =========================================================================
# Gestures
# =========================================================================

def move_position(department_id: Any, source_id: Any, target_id: Any) -> GestureOutcome:
    """
    Drop ``source_id`` onto ``target_id`` (blank target means detach).

    Raises:
        CycleDetected:        The target reports to the source already.
        AuthoritativeFailure: The deciding remote call was rejected; the
                              failure is audited before it propagates.
        OrgApiError:          The initial snapshot could not be read.
    """
    client = get_client()
    snapshot = load_department_tree(department_id, client)
    department = snapshot.department
    refreshed: dict[str, DepartmentTree | None] = {"tree": None}

    def on_update() -> None:
        try:
            refreshed["tree"] = load_department_tree(department.id, client)
        except OrgApiError as exc:
            logger.error("Re-fetch of department %s failed: %s", department.key, exc.message)

    def on_head_changed(new_head: str | None) -> None:
        logger.info("Department %s head changed to %s", department.key, new_head)

    operation = ReparentOperation(
        client,
        get_tracker(),
        on_update=on_update,
        on_head_changed=on_head_changed,
    )

    source = normalize(source_id)
    previous = _pointers(snapshot, source)
    try:
        result = operation.reparent(
            department.id,
            department.head_position_id,
            source,
            target_id,
            positions=snapshot.positions,
        )
    except AuthoritativeFailure as exc:
        _record_audit(
            action_type="FAILED",
            department_id=department.key,
            entity_id=source,
            previous_value=previous,
            new_value={"action": exc.action, "error": exc.message},
        )
        raise

    if not result.applied:
        # Nothing was sent; the snapshot is still current.
        return GestureOutcome(result=result, tree=snapshot)

    _record_audit(
        action_type=result.action.value,
        department_id=department.key,
        entity_id=source,
        previous_value=previous,
        new_value=_requested_pointers(result, previous),
        warnings=result.warnings,
    )
    return GestureOutcome(result=result, tree=refreshed["tree"])


def detach_position(department_id: Any, source_id: Any) -> GestureOutcome:
    """Drop ``source_id`` on the empty canvas."""
    return move_position(department_id, source_id, None)


# =========================================================================
# Export
# =========================================================================

def export_department(department_id: Any, fmt: str) -> tuple[io.BytesIO, str, str]:
    """
    Export a department's current forest.

    Returns:
        ``(buffer, mimetype, filename)``.

    Raises:
        ValueError: If ``fmt`` is not one of ``EXPORT_FORMATS``.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'")

    tree = load_department_tree(department_id)
    head = tree.department.head_position_id
    if fmt == "xlsx":
        buffer = export_service.export_tree_xlsx(tree.forest, head)
    elif fmt == "json":
        buffer = export_service.export_tree_json(tree.forest, tree.department.id, head)
    else:
        buffer = export_service.export_tree_csv(tree.forest, head)

    mimetype, extension = EXPORT_FORMATS[fmt]
    filename = f"org_chart_{tree.department.code or tree.department.key}.{extension}"
    return buffer, mimetype, filename


# =========================================================================
# Internal helpers
# =========================================================================

def _record_audit(**fields: Any) -> None:
    """
    Write and commit one audit entry.

    The gesture has already reached the API by the time this runs, so a
    database failure is logged and never replaces the gesture's outcome.
    """
    try:
        audit_service.log_change(**fields)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Could not record %s audit entry for %s",
            fields.get("action_type"),
            fields.get("entity_id"),
        )


def _pointers(snapshot: DepartmentTree, position_id: str) -> dict[str, str | None]:
    """Head pointer and ``position_id``'s reports-to link in a snapshot."""
    parent = next(
        (p.parent_key for p in snapshot.positions if p.key == position_id),
        "",
    )
    return {
        "head_position_id": snapshot.department.head_key or None,
        "reports_to_position_id": parent or None,
    }


def _requested_pointers(result: ReparentResult, previous: dict[str, str | None]) -> dict[str, str | None]:
    """Replay the successful calls over ``previous`` to get the new pointers."""
    pointers = dict(previous)
    for call in result.calls:
        if not call.succeeded:
            continue
        if call.method == ASSIGN_HEAD:
            pointers["head_position_id"] = call.value
        elif call.method == ASSIGN_REPORTING and call.subject_id == result.source_id:
            pointers["reports_to_position_id"] = call.value
    return pointers
