"""
Routes for the main blueprint — health check.
"""

from sqlalchemy import text

from orgchart.blueprints.main import bp
from orgchart.extensions import db
from orgchart.services import hierarchy_service
from orgchart.services.errors import OrgApiError


@bp.route("/health")
def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 200 when both the audit database and the org-structure API
    answer; 503 otherwise, naming the failing side.
    """
    status = {"status": "healthy", "database": "connected", "api": "connected"}

    try:
        db.session.execute(text("SELECT 1"))
    except Exception as exc:  # pylint: disable=broad-except
        status["status"] = "unhealthy"
        status["database"] = str(exc)

    try:
        hierarchy_service.get_client().ping()
    except OrgApiError as exc:
        status["status"] = "unhealthy"
        status["api"] = exc.message

    return status, 200 if status["status"] == "healthy" else 503
