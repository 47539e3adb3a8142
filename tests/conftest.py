"""
Pytest configuration and shared fixtures.

Provides a test application, database session, and test client that
all test modules can use, plus ``FakeOrgApi``: an in-memory stand-in
for the org-structure API that records every write and applies it, so
a re-fetch after a gesture sees the new pointers.
"""

import pytest

from orgchart import create_app
from orgchart.extensions import db as _db
from orgchart.models.organization import Department, Position
from orgchart.services import hierarchy_service
from orgchart.services.errors import OrgApiError
from orgchart.services.pending import PendingOperationTracker


class FakeOrgApi:
    """
    In-memory org-structure API.

    ``calls`` lists every write as ``(method, subject_id, value)``.
    ``failures`` maps ``(method, subject_id)`` to a backend message; the
    matching write raises ``OrgApiError`` and changes nothing.
    Like the backend, a reports-to link onto the position itself or onto
    one of its own reports is refused.
    ``before_write`` (if set) runs at the start of every write, which
    lets a test start a second gesture while the first is in flight.
    """

    def __init__(self, departments=None, positions=None):
        self.departments = {d["_id"]: dict(d) for d in departments or []}
        self.positions = {p["_id"]: dict(p) for p in positions or []}
        self.calls = []
        self.failures = {}
        self.before_write = None
        self.reads = 0

    # -- reads -------------------------------------------------------------

    def get_department(self, department_id):
        self.reads += 1
        record = self.departments.get(str(department_id))
        if record is None:
            raise OrgApiError(f"Department with ID {department_id} not found", 404)
        return Department.from_api(record)

    def get_departments(self, search=None, is_active=None):
        self.reads += 1
        return [
            Department.from_api(record)
            for record in self.departments.values()
            if is_active is None or record.get("isActive", True) == is_active
        ]

    def get_positions_by_department(self, department_id):
        self.reads += 1
        return [
            Position.from_api(record)
            for record in self.positions.values()
            if record.get("departmentId") == str(department_id)
        ]

    def ping(self):
        return True

    # -- writes ------------------------------------------------------------

    def assign_reporting_position(self, position_id, reports_to_position_id):
        self._write("assign_reporting_position", position_id, reports_to_position_id)
        if reports_to_position_id is not None:
            # Same validation as the backend: no self-reference, no loops.
            if reports_to_position_id == position_id:
                raise OrgApiError("Position cannot report to itself", 400)
            if position_id in self._managers_of(reports_to_position_id):
                raise OrgApiError("Circular reporting relationship detected", 400)
        self.positions[position_id]["reportsToPositionId"] = reports_to_position_id

    def assign_department_head(self, department_id, head_position_id):
        self._write("assign_department_head", department_id, head_position_id)
        self.departments[department_id]["headPositionId"] = head_position_id

    def _managers_of(self, position_id):
        """Ids above ``position_id``, nearest first."""
        chain = []
        current = self.positions.get(position_id, {}).get("reportsToPositionId")
        while current and current not in chain:
            chain.append(current)
            current = self.positions.get(current, {}).get("reportsToPositionId")
        return chain

    def _write(self, method, subject_id, value):
        self.calls.append((method, subject_id, value))
        if self.before_write is not None:
            self.before_write(method, subject_id, value)
        message = self.failures.get((method, subject_id))
        if message:
            raise OrgApiError(message, 400)


def make_position(position_id, reports_to=None, department="D1", active=True, title=None):
    """Build a raw API position record."""
    return {
        "_id": position_id,
        "code": f"POS-{position_id}",
        "title": title or f"Position {position_id}",
        "departmentId": department,
        "reportsToPositionId": reports_to,
        "isActive": active,
    }


def make_department(department_id="D1", head=None, code="ENG", name="Engineering"):
    """Build a raw API department record."""
    return {
        "_id": department_id,
        "code": code,
        "name": name,
        "headPositionId": head,
        "isActive": True,
    }


@pytest.fixture(scope="session")
def app():
    """
    Create a Flask application configured for testing.

    The app is created once per test session on an in-memory SQLite
    database; the audit table is created up front.
    """
    app = create_app("testing")

    # Establish an application context for the entire test session.
    with app.app_context():
        _db.create_all()
        yield app


@pytest.fixture(scope="function")
def db_session(app):  # pylint: disable=redefined-outer-name
    """
    Provide a clean database session for each test function.

    Services commit their audit entries, so the tables are emptied after
    each test instead of rolling back a transaction.
    """
    yield _db.session

    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()


@pytest.fixture(scope="function")
def client(app):  # pylint: disable=redefined-outer-name
    """
    Provide a Flask test client for making HTTP requests.

    Usage in tests::

        def test_health(client):
            response = client.get("/health")
            assert response.status_code == 200
    """
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def tracker():
    """An isolated in-flight tracker."""
    return PendingOperationTracker()


@pytest.fixture
def fake_api():
    """
    A department D1 headed by A, with A -> B -> C and a stray position
    in another department.
    """
    return FakeOrgApi(
        departments=[make_department("D1", head="A")],
        positions=[
            make_position("A"),
            make_position("B", reports_to="A"),
            make_position("C", reports_to="B"),
            make_position("X", department="D2"),
        ],
    )


@pytest.fixture
def use_fake_api(app, monkeypatch, fake_api):  # pylint: disable=redefined-outer-name
    """
    Route every service call through ``fake_api`` and give the app a
    fresh tracker.
    """
    monkeypatch.setattr(hierarchy_service, "get_client", lambda: fake_api)
    monkeypatch.setitem(app.extensions, "pending_operations", PendingOperationTracker())
    return fake_api
