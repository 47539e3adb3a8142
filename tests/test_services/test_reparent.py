"""
Tests for ReparentOperation — the drag-and-drop mutation state machine.

Uses ``FakeOrgApi`` so every write is recorded and applied; rebuilding
the forest from the fake afterwards shows what the host would render
after its re-fetch.
"""

import pytest

from orgchart.services.errors import AuthoritativeFailure, CycleDetected
from orgchart.services.reparent import (
    ReparentAction,
    ReparentOperation,
    ReparentOutcome,
)
from orgchart.models.organization import forest_ids
from orgchart.services.tree_builder import build_forest
from tests.conftest import make_position

HEAD = "assign_department_head"
LINK = "assign_reporting_position"


class TestReparentOperation:
    """One operation per test against D1: head A, A -> B -> C, A -> E."""

    @pytest.fixture(autouse=True)
    def _setup(self, fake_api, tracker):
        # E is a second, non-head report of A.
        fake_api.positions["E"] = make_position("E", reports_to="A")
        self.api = fake_api
        self.tracker = tracker
        self.updates = []
        self.head_changes = []
        self.op = ReparentOperation(
            fake_api,
            tracker,
            on_update=lambda: self.updates.append(True),
            on_head_changed=self.head_changes.append,
        )

    def _head(self):
        return self.api.departments["D1"]["headPositionId"]

    def _rebuild(self):
        return build_forest(
            self.api.get_positions_by_department("D1"), "D1", self._head()
        )

    def _snapshot(self):
        return self.api.get_positions_by_department("D1")

    # -- no-op and busy ------------------------------------------------------

    def test_self_drop_is_noop(self):
        before = [tree.to_dict() for tree in self._rebuild()]

        result = self.op.reparent("D1", "A", "B", {"_id": "B"})

        assert result.outcome is ReparentOutcome.NOOP
        assert self.api.calls == []
        assert self.updates == []
        assert [tree.to_dict() for tree in self._rebuild()] == before

    def test_busy_target_rejected(self):
        self.tracker.begin(["B"])

        result = self.op.reparent("D1", "A", "C", "B")

        assert result.outcome is ReparentOutcome.BUSY
        assert self.api.calls == []
        assert self.updates == []
        # The other holder's mark is untouched.
        assert self.tracker.is_busy("B")

    def test_overlapping_gesture_on_same_source_rejected(self):
        """A second drag of B while the first is still in flight is ignored."""
        nested = []

        def second_gesture(method, subject_id, value):
            if not nested:
                nested.append(self.op.reparent("D1", "A", "B", "C"))

        self.api.before_write = second_gesture
        first = self.op.reparent("D1", "A", "B", "A")

        assert first.outcome is ReparentOutcome.APPLIED
        assert nested[0].outcome is ReparentOutcome.BUSY
        assert all(call[1] != "B" or call[2] != "C" for call in self.api.calls)
        assert not self.tracker.is_busy("B")

    # -- normal reparent -----------------------------------------------------

    def test_normal_reparent(self):
        result = self.op.reparent("D1", "A", "C", "E", positions=self._snapshot())

        assert result.action is ReparentAction.REPARENT
        assert self.api.calls == [(LINK, "C", "E")]
        assert not result.head_changed
        assert self.head_changes == []
        assert self.updates == [True]
        forest = self._rebuild()
        assert len(forest) == 1
        assert forest[0].ids() == ["A", "B", "E", "C"]

    def test_marks_cleared_after_success(self):
        self.op.reparent("D1", "A", "C", "E")
        assert self.tracker.busy_ids() == []

    def test_cycle_rejected_before_any_call(self):
        with pytest.raises(CycleDetected):
            self.op.reparent("D1", "A", "B", "C", positions=self._snapshot())

        assert self.api.calls == []
        assert self.updates == []
        assert self.tracker.busy_ids() == []

    def test_backend_refuses_loop_without_snapshot(self):
        with pytest.raises(AuthoritativeFailure) as excinfo:
            self.op.reparent("D1", "A", "B", "C")

        assert excinfo.value.message == "Circular reporting relationship detected"
        assert self.api.positions["B"]["reportsToPositionId"] == "A"
        assert self.updates == [True]
        assert self.tracker.busy_ids() == []

    def test_authoritative_failure_propagates_after_update(self):
        self.api.failures[(LINK, "C")] = "Target position is outside the department"

        with pytest.raises(AuthoritativeFailure) as excinfo:
            self.op.reparent("D1", "A", "C", "E")

        assert excinfo.value.message == "Target position is outside the department"
        assert excinfo.value.action == "REPARENT"
        assert self.updates == [True]
        assert self.tracker.busy_ids() == []

    # -- head transfers ------------------------------------------------------

    def test_dragging_head_onto_node_promotes_target(self):
        """
        Head A dropped on its report B: B becomes head.  Relinking A under
        B is refused by the backend (B still reports to A), which is only
        a warning.
        """
        result = self.op.reparent("D1", "A", "A", "B")

        assert result.action is ReparentAction.PROMOTE_TARGET
        assert self.api.calls == [(HEAD, "D1", "B"), (LINK, "A", "B")]
        assert result.applied
        assert result.new_head_id == "B"
        assert self.head_changes == ["B"]
        assert self._head() == "B"
        assert result.calls[1].succeeded is False
        assert result.warnings == [
            "assign_reporting_position(A, B) failed: Circular reporting relationship detected"
        ]

        forest = self._rebuild()
        assert [tree.id for tree in forest] == ["B", "A"]
        assert sorted(forest_ids(forest)) == ["A", "B", "C", "E"]

    def test_promote_target_relinks_when_target_is_not_below_head(self):
        """Dropping the head on a detached position relinks cleanly."""
        self.api.positions["F"] = make_position("F")

        result = self.op.reparent("D1", "A", "A", "F")

        assert result.warnings == []
        assert all(call.succeeded for call in result.calls)
        forest = self._rebuild()
        assert len(forest) == 1
        assert forest[0].ids()[:2] == ["F", "A"]

    def test_promote_target_chaining_failure_is_warning(self):
        self.api.failures[(LINK, "A")] = "Position not found"

        result = self.op.reparent("D1", "A", "A", "B")

        assert result.applied
        assert self._head() == "B"
        assert len(result.warnings) == 1
        assert "Position not found" in result.warnings[0]
        assert result.calls[1].succeeded is False
        assert self.head_changes == ["B"]
        assert self.updates == [True]

    def test_promote_target_head_failure_stops_chain(self):
        self.api.failures[(HEAD, "D1")] = "Head position must be active"

        with pytest.raises(AuthoritativeFailure):
            self.op.reparent("D1", "A", "A", "B")

        assert self.api.calls == [(HEAD, "D1", "B")]
        assert self.head_changes == []
        assert self.updates == [True]

    def test_dropping_child_onto_head_promotes_source(self):
        """Head promotion round trip: B onto head A makes B head over A."""
        result = self.op.reparent("D1", {"_id": "A"}, "B", "A")

        assert result.action is ReparentAction.PROMOTE_SOURCE
        assert self.api.calls == [
            (LINK, "B", None),
            (HEAD, "D1", "B"),
            (LINK, "A", "B"),
        ]
        assert self._head() == "B"

        forest = self._rebuild()
        assert len(forest) == 1
        assert forest[0].id == "B"
        assert "A" in [child.id for child in forest[0].children]

    def test_promote_source_head_failure_skips_relink(self):
        self.api.failures[(HEAD, "D1")] = "Head position must be active"

        with pytest.raises(AuthoritativeFailure):
            self.op.reparent("D1", "A", "B", "A")

        assert self.api.calls == [(LINK, "B", None), (HEAD, "D1", "B")]
        assert self._head() == "A"
        assert self.head_changes == []

    def test_promote_source_first_unlink_failure_is_warning(self):
        self.api.failures[(LINK, "B")] = "Position not found"

        result = self.op.reparent("D1", "A", "B", "A")

        assert result.applied
        # B still reports to A, so relinking A under B is refused too.
        assert len(result.warnings) == 2
        assert "Circular" in result.warnings[1]
        assert self._head() == "B"

    # -- detach --------------------------------------------------------------

    def test_detach_plain_position(self):
        result = self.op.detach("D1", "A", "C")

        assert result.action is ReparentAction.DETACH
        assert self.api.calls == [(LINK, "C", None)]
        assert not result.head_changed
        assert [tree.id for tree in self._rebuild()] == ["A", "C"]

    def test_detach_head_clears_pointer(self):
        result = self.op.reparent("D1", "A", "A", None)

        assert result.action is ReparentAction.DETACH_HEAD
        assert self.api.calls == [(HEAD, "D1", None), (LINK, "A", None)]
        assert result.head_changed
        assert result.new_head_id is None
        assert self.head_changes == [None]
        assert self._head() is None

    def test_blank_source_rejected(self):
        with pytest.raises(ValueError):
            self.op.reparent("D1", "A", "", "B")

    def test_result_to_dict(self):
        payload = self.op.reparent("D1", "A", "A", "B").to_dict()

        assert payload["status"] == "applied"
        assert payload["action"] == "PROMOTE_TARGET"
        assert [call["method"] for call in payload["calls"]] == [HEAD, LINK]
        assert payload["calls"][0]["authoritative"] is True
        assert payload["calls"][1]["authoritative"] is False
