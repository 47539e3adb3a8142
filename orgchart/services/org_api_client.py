"""
Org-structure API client — reads and writes against the HR portal's REST API.

Positions and departments live in the portal's backend; the hierarchy
engine only reads snapshots and issues two pointer updates (reporting
link, department head).  This client wraps those endpoints, unwraps the
``{"success", "message", "data"}`` envelope, and turns any failure into
``OrgApiError`` carrying the backend's own message.

Configuration is read from Flask ``current_app.config`` unless passed
explicitly:
    - ``ORG_API_BASE_URL``:  e.g. ``https://hr.example.org/api/organization-structure``
    - ``ORG_API_TOKEN``:     Bearer token sent with every request.
    - ``ORG_API_PAGE_SIZE``: Records per page when listing departments.
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import urllib3
from flask import current_app

from orgchart.models.organization import Department, Position
from orgchart.services.errors import OrgApiError
from orgchart.services.identifiers import normalize

logger = logging.getLogger(__name__)

# Seconds allowed for connect and read on every request.
_TIMEOUT = urllib3.Timeout(connect=5.0, read=30.0)


class OrgStructureApiClient:
    """
    Client for the department and position endpoints.

    Usage inside a Flask request or app context::

        client = OrgStructureApiClient()
        positions = client.get_positions_by_department(dept_id)
        client.assign_reporting_position(pos_id, new_parent_id)

    Writes are never retried: the caller re-fetches afterwards and the
    fresh snapshot is the source of truth.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        page_size: int | None = None,
        http: urllib3.PoolManager | None = None,
    ) -> None:
        if base_url is None:
            base_url = current_app.config["ORG_API_BASE_URL"]
        if token is None:
            token = current_app.config.get("ORG_API_TOKEN", "")
        if page_size is None:
            page_size = current_app.config.get("ORG_API_PAGE_SIZE", 100)

        self.base_url: str = base_url.rstrip("/")
        self.page_size: int = page_size
        self.headers: dict[str, str] = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

        self._http = http or urllib3.PoolManager(timeout=_TIMEOUT, retries=False)

        logger.debug("OrgStructureApiClient initialized: base_url=%s", self.base_url)

    # =================================================================
    # Reads
    # =================================================================

    def get_positions_by_department(self, department_id: Any) -> list[Position]:
        """Return every position (active or not) of one department."""
        payload = self._request("GET", f"positions/department/{_segment(department_id)}")
        records = payload.get("data") or []
        positions = [Position.from_api(record) for record in records]
        logger.debug(
            "Fetched %d position(s) for department %s",
            len(positions),
            normalize(department_id),
        )
        return positions

    def get_departments(
        self,
        search: str | None = None,
        is_active: bool | None = None,
    ) -> list[Department]:
        """
        Return all departments matching the filters, across every page.

        Iterates until ``totalPages`` is reached or a page comes back
        empty.
        """
        departments: list[Department] = []
        page = 1

        while True:
            fields: dict[str, Any] = {"page": page, "limit": self.page_size}
            if search:
                fields["search"] = search
            if is_active is not None:
                fields["isActive"] = "true" if is_active else "false"

            payload = self._request("GET", "departments", fields=fields)
            records = payload.get("data") or []
            departments.extend(Department.from_api(record) for record in records)

            total_pages = payload.get("totalPages") or 1
            if not records or page >= total_pages:
                break
            page += 1

        logger.debug("Fetched %d department(s) across %d page(s)", len(departments), page)
        return departments

    def get_department(self, department_id: Any) -> Department:
        """Return one department, including its head pointer."""
        payload = self._request("GET", f"departments/{_segment(department_id)}")
        record = payload.get("data")
        if not record:
            raise OrgApiError(f"Department {normalize(department_id)} not found", 404)
        return Department.from_api(record)

    def ping(self) -> bool:
        """Return True when the API answers a minimal authenticated read."""
        self._request("GET", "departments", fields={"page": 1, "limit": 1})
        return True

    # =================================================================
    # Writes
    # =================================================================

    def assign_reporting_position(self, position_id: Any, reports_to_position_id: Any) -> Position | None:
        """Point a position at a new parent, or clear it with ``None``."""
        parent = normalize(reports_to_position_id) or None
        payload = self._request(
            "PUT",
            f"positions/{_segment(position_id)}/reporting-position",
            body={"reportsToPositionId": parent},
        )
        logger.info("Position %s now reports to %s", normalize(position_id), parent)
        record = payload.get("data")
        return Position.from_api(record) if isinstance(record, dict) else None

    def assign_department_head(self, department_id: Any, head_position_id: Any) -> Department | None:
        """Make a position the department head, or clear it with ``None``."""
        head = normalize(head_position_id) or None
        payload = self._request(
            "PUT",
            f"departments/{_segment(department_id)}/head",
            body={"headPositionId": head},
        )
        logger.info("Department %s head set to %s", normalize(department_id), head)
        record = payload.get("data")
        return Department.from_api(record) if isinstance(record, dict) else None

    # =================================================================
    # HTTP transport
    # =================================================================

    def _request(
        self,
        method: str,
        endpoint: str,
        fields: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Send a request and return the decoded response envelope.

        Raises:
            OrgApiError: On transport errors, non-2xx responses (with the
                         backend ``message`` when present), or bad JSON.
        """
        url = f"{self.base_url}/{endpoint}"

        try:
            if body is not None:
                response = self._http.request(
                    method, url, headers=self.headers, body=json.dumps(body).encode("utf-8")
                )
            else:
                response = self._http.request(method, url, headers=self.headers, fields=fields)
        except urllib3.exceptions.HTTPError as exc:
            logger.error("%s %s failed: %s", method, endpoint, exc)
            raise OrgApiError(f"Org-structure API unreachable: {exc}") from exc

        try:
            payload = json.loads(response.data) if response.data else {}
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from %s %s (status %d)", method, endpoint, response.status)
            raise OrgApiError("Invalid response from org-structure API", response.status) from exc

        if not 200 <= response.status < 300:
            message = _error_message(payload) or f"Request failed with status {response.status}"
            logger.error("%s %s returned %d: %s", method, endpoint, response.status, message)
            raise OrgApiError(message, response.status)

        if not isinstance(payload, dict):
            return {"data": payload}
        return payload


def _segment(ref: Any) -> str:
    """Normalize a reference for use as a URL path segment."""
    key = normalize(ref)
    if not key:
        raise ValueError("An identifier is required")
    return quote(key, safe="")


def _error_message(payload: Any) -> str:
    """Pull the backend's message out of an error body (NestJS style)."""
    if not isinstance(payload, dict):
        return ""
    message = payload.get("message")
    if isinstance(message, list):
        return "; ".join(str(m) for m in message)
    return str(message) if message else ""
