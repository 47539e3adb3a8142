"""
Routes for the hierarchy blueprint — tree, gestures, export, audit.

Gesture endpoints answer with the gesture result and the tree as
re-read after it, so the client never renders an optimistic guess.

Status mapping:
    applied                -> 200
    noop (self-drop)       -> 200 ``{"status": "noop"}``
    busy                   -> 409 ``{"status": "busy"}``
    CycleDetected          -> 409
    AuthoritativeFailure   -> 502 with the backend message as-is
    OrgApiError on a read  -> 502
"""

import logging

from flask import abort, current_app, jsonify, make_response, request

from orgchart.blueprints.hierarchy import bp
from orgchart.services import audit_service, hierarchy_service
from orgchart.services.errors import AuthoritativeFailure, CycleDetected, OrgApiError
from orgchart.services.reparent import ReparentOutcome

logger = logging.getLogger(__name__)


# =========================================================================
# Error handlers
# =========================================================================

@bp.errorhandler(OrgApiError)
def handle_api_error(error):
    """A read against the org-structure API failed."""
    return jsonify({"error": error.message}), 502


@bp.errorhandler(AuthoritativeFailure)
def handle_authoritative_failure(error):
    """The deciding call of a gesture was rejected by the backend."""
    return jsonify({"error": error.message, "action": error.action}), 502


@bp.errorhandler(CycleDetected)
def handle_cycle(error):
    """The gesture would have created a reporting loop."""
    return jsonify({
        "error": str(error),
        "source_id": error.source_id,
        "target_id": error.target_id,
    }), 409


# =========================================================================
# Reads
# =========================================================================

@bp.route("/departments")
def departments():
    """List departments (active only unless ``?all=1``)."""
    active_only = request.args.get("all", "0") not in ("1", "true")
    items = hierarchy_service.list_departments(active_only=active_only)
    return jsonify({"departments": [d.to_dict() for d in items]})


@bp.route("/department/<department_id>/tree")
def department_tree(department_id):
    """Return the department's position forest, head tree first."""
    tree = hierarchy_service.load_department_tree(department_id)
    return jsonify(tree.to_dict())


@bp.route("/department/<department_id>/position/<position_id>/reporting-lines")
def reporting_lines(department_id, position_id):
    """Return a position's chain of managers and its direct reports."""
    try:
        lines = hierarchy_service.get_reporting_lines(department_id, position_id)
    except LookupError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(lines)


# =========================================================================
# Gestures
# =========================================================================

@bp.route("/department/<department_id>/reparent", methods=["POST"])
def reparent(department_id):
    """
    Drop one position onto another.

    Body: ``{"source_id": "...", "target_id": "..."}``.  A missing or
    blank ``target_id`` is treated as a drop on the empty canvas.
    """
    payload = _json_body()
    source_id = _required(payload, "source_id")
    outcome = hierarchy_service.move_position(
        department_id, source_id, payload.get("target_id")
    )
    return _gesture_response(outcome)


@bp.route("/department/<department_id>/detach", methods=["POST"])
def detach(department_id):
    """Drop a position on the empty canvas.  Body: ``{"source_id": "..."}``."""
    payload = _json_body()
    source_id = _required(payload, "source_id")
    outcome = hierarchy_service.detach_position(department_id, source_id)
    return _gesture_response(outcome)


# =========================================================================
# Export
# =========================================================================

@bp.route("/department/<department_id>/export/<fmt>")
def export_tree(department_id, fmt):
    """Download the department's chart as CSV, Excel, or JSON."""
    if fmt not in hierarchy_service.EXPORT_FORMATS:
        abort(404)

    buffer, mimetype, filename = hierarchy_service.export_department(department_id, fmt)
    response = make_response(buffer.read())
    response.headers["Content-Type"] = mimetype
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


# =========================================================================
# Audit trail
# =========================================================================

@bp.route("/audit")
def audit_log():
    """Paginated audit trail with optional action and department filters."""
    page = request.args.get("page", 1, type=int)
    per_page = current_app.config.get("AUDIT_PAGE_SIZE", 50)
    pagination = audit_service.get_audit_logs(
        page=page,
        per_page=per_page,
        action_type=request.args.get("action_type") or None,
        department_id=request.args.get("department_id") or None,
    )
    return jsonify({
        "items": [audit_service.to_dict(entry) for entry in pagination.items],
        "page": pagination.page,
        "pages": pagination.pages,
        "total": pagination.total,
        "action_types": audit_service.get_distinct_action_types(),
    })


# =========================================================================
# Helpers
# =========================================================================

def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, description="Expected a JSON object body")
    return payload


def _required(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None or not str(value).strip():
        abort(400, description=f"'{key}' is required")
    return value


def _gesture_response(outcome):
    status_code = 409 if outcome.result.outcome is ReparentOutcome.BUSY else 200
    return jsonify(outcome.to_dict()), status_code
