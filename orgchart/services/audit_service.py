"""
Audit service — records hierarchy mutations and queries the audit trail.

``hierarchy_service`` calls ``log_change`` after every dispatched
gesture (applied or failed) and commits; ``log_change`` itself only
flushes.  No-ops and busy rejections issue no remote call and are not
recorded.
"""

import json
import logging
from datetime import datetime
from typing import Any

from flask import request
from sqlalchemy import desc

from orgchart.extensions import db
from orgchart.models.audit import AuditLog

logger = logging.getLogger(__name__)


# -- Write audit entries ---------------------------------------------------

def log_change(
    action_type: str,
    department_id: str | None,
    entity_id: str | None,
    previous_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
    entity_type: str = "org.position",
) -> AuditLog:
    """
    Record a hierarchy mutation in the audit log.

    Args:
        action_type:    One of ``orgchart.models.audit.ACTION_TYPES``.
        department_id:  Department the gesture ran against.
        entity_id:      The dragged position.
        previous_value: Pointers before the change, as the caller knew them.
        new_value:      Pointers the gesture requested.
        warnings:       Best-effort steps that failed.
        entity_type:    Dot-notation entity name.

    Returns:
        The newly created AuditLog record.
    """
    # Capture request metadata when available (inside a request context).
    ip_address = None
    user_agent = None
    try:
        ip_address = request.remote_addr
        user_agent = str(request.user_agent)[:500]
    except RuntimeError:
        # Outside of a request context (e.g., CLI).
        pass

    entry = AuditLog(
        action_type=action_type,
        department_id=department_id,
        entity_type=entity_type,
        entity_id=entity_id,
        previous_value=json.dumps(previous_value) if previous_value else None,
        new_value=json.dumps(new_value) if new_value else None,
        warnings=json.dumps(warnings) if warnings else None,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    db.session.flush()  # Ensure the entry gets an ID immediately.

    logger.info(
        "Audit: %s %s:%s in department %s",
        action_type,
        entity_type,
        entity_id,
        department_id,
    )
    return entry


# -- Query audit logs ------------------------------------------------------

def get_audit_logs(
    page: int = 1,
    per_page: int = 50,
    action_type: str | None = None,
    department_id: str | None = None,
    entity_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """
    Query audit logs with optional filters and pagination.

    Returns:
        A SQLAlchemy pagination object with ``.items``, ``.pages``,
        ``.total``, etc.
    """
    query = AuditLog.query.order_by(desc(AuditLog.created_at), desc(AuditLog.id))

    if action_type:
        query = query.filter(AuditLog.action_type == action_type)
    if department_id:
        query = query.filter(AuditLog.department_id == department_id)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    return query.paginate(page=page, per_page=per_page, error_out=False)


def get_distinct_action_types() -> list[str]:
    """Return a sorted list of distinct action_type values in the audit log."""
    rows = (
        db.session.query(AuditLog.action_type)
        .distinct()
        .order_by(AuditLog.action_type)
        .all()
    )
    return [row[0] for row in rows]


def to_dict(entry: AuditLog) -> dict[str, Any]:
    """Return a JSON-ready view of one audit entry."""
    return {
        "id": entry.id,
        "action_type": entry.action_type,
        "department_id": entry.department_id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "previous_value": json.loads(entry.previous_value) if entry.previous_value else None,
        "new_value": json.loads(entry.new_value) if entry.new_value else None,
        "warnings": json.loads(entry.warnings) if entry.warnings else [],
        "ip_address": entry.ip_address,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
