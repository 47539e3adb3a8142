"""
Audit trail for hierarchy mutations.

Positions and departments live in the remote API, so every structural
change the engine makes is recorded here: which gesture, which records,
the pointers before and after, and any best-effort step that failed.
"""

from datetime import datetime, timezone

from orgchart.extensions import db

# Values allowed in ``AuditLog.action_type``.
ACTION_TYPES = (
    "REPARENT",
    "PROMOTE_TARGET",
    "PROMOTE_SOURCE",
    "DETACH",
    "DETACH_HEAD",
    "FAILED",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(db.Model):
    """
    One applied (or failed) hierarchy mutation.

    JSON conventions for ``previous_value`` / ``new_value``:
      - ``{"head_position_id": ..., "reports_to_position_id": ...}`` as
        known to the caller before the gesture, and as requested by it.
      - ``warnings`` lists the best-effort calls that failed.

    ``entity_id`` is the dragged position; ``department_id`` is kept as
    a string because both are opaque API identifiers.
    """

    __tablename__ = "hierarchy_audit_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    action_type = db.Column(db.String(50), nullable=False, index=True)
    department_id = db.Column(db.String(64), nullable=True, index=True)
    entity_type = db.Column(db.String(100), nullable=False, default="org.position")
    entity_id = db.Column(db.String(64), nullable=True)
    previous_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    warnings = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "action_type IN ("
            + ", ".join(f"'{action}'" for action in ACTION_TYPES)
            + ")",
            name="CK_hierarchy_audit_log_action_type",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog {self.action_type} {self.entity_type}"
            f":{self.entity_id}>"
        )
