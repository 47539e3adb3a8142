"""
Reparent operation — the mutation behind an org-chart drag-and-drop.

A gesture names a *source* position and either a *target* position or
the empty canvas (detach).  Depending on whether either end is the
department's current head, the gesture becomes one of five actions,
each an ordered list of remote calls:

    PROMOTE_TARGET  source is the head:   head := target, source -> target
    PROMOTE_SOURCE  target is the head:   source -> none, head := source,
                                          old head -> source
    REPARENT        neither is the head:  source -> target
    DETACH_HEAD     head dropped on canvas: head := none, source -> none
    DETACH          other dropped on canvas: source -> none

Exactly one call per action is *authoritative*: if it fails the action
fails and nothing after it runs.  The rest are best-effort; a failure
becomes a warning on the result and never rolls anything back.

Whatever happens after dispatch, ``on_update`` fires so the host
re-fetches and rebuilds from server state instead of trusting an
optimistic guess.
"""

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from orgchart.models.organization import Position
from orgchart.services.errors import (
    AuthoritativeFailure,
    BusyConflict,
    CycleDetected,
    OrgApiError,
)
from orgchart.services.identifiers import normalize, same_id
from orgchart.services.pending import PendingOperationTracker
from orgchart.services.tree_builder import reporting_chain

logger = logging.getLogger(__name__)

# Remote call names, as recorded on ``ReparentResult.calls``.
ASSIGN_HEAD = "assign_department_head"
ASSIGN_REPORTING = "assign_reporting_position"


class OrgStructureWriter(Protocol):
    """The two write calls the operation needs from the API client."""

    def assign_reporting_position(self, position_id: str, reports_to_position_id: str | None) -> Any:
        ...

    def assign_department_head(self, department_id: str, head_position_id: str | None) -> Any:
        ...


class ReparentOutcome(enum.Enum):
    APPLIED = "applied"
    NOOP = "noop"
    BUSY = "busy"


class ReparentAction(enum.Enum):
    REPARENT = "REPARENT"
    PROMOTE_TARGET = "PROMOTE_TARGET"
    PROMOTE_SOURCE = "PROMOTE_SOURCE"
    DETACH = "DETACH"
    DETACH_HEAD = "DETACH_HEAD"


@dataclass
class RemoteCall:
    """One remote call issued (or attempted) by an operation."""

    method: str
    subject_id: str
    value: str | None
    authoritative: bool
    succeeded: bool | None = None
    error: str | None = None


@dataclass
class ReparentResult:
    """What a gesture did.  ``calls`` lists remote calls in issue order."""

    outcome: ReparentOutcome
    action: ReparentAction | None
    source_id: str
    target_id: str | None
    head_changed: bool = False
    new_head_id: str | None = None
    calls: list[RemoteCall] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.outcome is ReparentOutcome.APPLIED

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready summary."""
        return {
            "status": self.outcome.value,
            "action": self.action.value if self.action else None,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "head_changed": self.head_changed,
            "new_head_id": self.new_head_id,
            "calls": [asdict(call) for call in self.calls],
            "warnings": list(self.warnings),
        }


class ReparentOperation:
    """
    Runs drag-and-drop mutations against the org-structure API.

    Args:
        client:          Anything with ``assign_reporting_position`` and
                         ``assign_department_head``.
        tracker:         Shared in-flight tracker; busy positions are
                         rejected, never queued.
        on_update:       Called with no arguments after every dispatched
                         action, successful or not.
        on_head_changed: Called with the new head id (or None) when an
                         action's authoritative head assignment succeeded.
    """

    def __init__(
        self,
        client: OrgStructureWriter,
        tracker: PendingOperationTracker,
        on_update: Callable[[], None] | None = None,
        on_head_changed: Callable[[str | None], None] | None = None,
    ) -> None:
        self.client = client
        self.tracker = tracker
        self.on_update = on_update
        self.on_head_changed = on_head_changed

    # =====================================================================
    # Gestures
    # =====================================================================

    def reparent(
        self,
        department_id: Any,
        head_position_id: Any,
        source_id: Any,
        target_id: Any,
        positions: Iterable[Position] | None = None,
    ) -> ReparentResult:
        """
        Handle a position dropped onto another position.

        Args:
            department_id:    Department the two positions belong to.
            head_position_id: The department's current head, if any.
            source_id:        Position being dragged.
            target_id:        Position it was dropped on.  Blank means the
                              empty canvas, i.e. a detach.
            positions:        Current snapshot, used to refuse drops that
                              would create a reporting loop.

        Raises:
            CycleDetected:        Target already reports (transitively) to
                                  the source.  No call was issued.
            AuthoritativeFailure: The deciding remote call was rejected.
        """
        source = self._require_source(source_id)
        target = normalize(target_id)
        if not target:
            return self.detach(department_id, head_position_id, source)

        if source == target:
            logger.debug("Position %s dropped on itself; ignoring", source)
            return ReparentResult(ReparentOutcome.NOOP, None, source, target)

        department = normalize(department_id)
        head = normalize(head_position_id)

        if same_id(source, head):
            action = ReparentAction.PROMOTE_TARGET
            steps = [
                RemoteCall(ASSIGN_HEAD, department, target, authoritative=True),
                RemoteCall(ASSIGN_REPORTING, source, target, authoritative=False),
            ]
            new_head = target
        elif same_id(target, head):
            action = ReparentAction.PROMOTE_SOURCE
            steps = [
                RemoteCall(ASSIGN_REPORTING, source, None, authoritative=False),
                RemoteCall(ASSIGN_HEAD, department, source, authoritative=True),
                RemoteCall(ASSIGN_REPORTING, head, source, authoritative=False),
            ]
            new_head = source
        else:
            action = ReparentAction.REPARENT
            if positions is not None:
                self._check_cycle(source, target, positions)
            steps = [RemoteCall(ASSIGN_REPORTING, source, target, authoritative=True)]
            new_head = None

        return self._dispatch(
            action, source, target, [source, target], steps,
            head_changed=new_head is not None, new_head=new_head,
        )

    def detach(self, department_id: Any, head_position_id: Any, source_id: Any) -> ReparentResult:
        """
        Handle a position dropped on the empty canvas.

        Detaching the head clears the department's head pointer first,
        then the position's own reports-to link.
        """
        source = self._require_source(source_id)
        department = normalize(department_id)

        if same_id(source, head_position_id):
            return self._dispatch(
                ReparentAction.DETACH_HEAD, source, None, [source],
                [
                    RemoteCall(ASSIGN_HEAD, department, None, authoritative=True),
                    RemoteCall(ASSIGN_REPORTING, source, None, authoritative=False),
                ],
                head_changed=True, new_head=None,
            )

        return self._dispatch(
            ReparentAction.DETACH, source, None, [source],
            [RemoteCall(ASSIGN_REPORTING, source, None, authoritative=True)],
            head_changed=False, new_head=None,
        )

    # =====================================================================
    # Execution
    # =====================================================================

    def _dispatch(
        self,
        action: ReparentAction,
        source: str,
        target: str | None,
        busy_ids: list[str],
        steps: list[RemoteCall],
        head_changed: bool,
        new_head: str | None,
    ) -> ReparentResult:
        """Mark the positions busy, run the steps in order, then notify."""
        result = ReparentResult(ReparentOutcome.APPLIED, action, source, target)
        dispatched = False
        try:
            with self.tracker.hold(busy_ids):
                dispatched = True
                for step in steps:
                    self._run_step(action, step, result)

            if head_changed:
                result.head_changed = True
                result.new_head_id = new_head
                if self.on_head_changed is not None:
                    self.on_head_changed(new_head)

            logger.info(
                "%s applied: source=%s target=%s (%d warning(s))",
                action.value,
                source,
                target,
                len(result.warnings),
            )
            return result
        except BusyConflict as exc:
            if dispatched:
                raise
            logger.warning(
                "Ignoring %s of %s: operation already in flight for %s",
                action.value,
                source,
                ", ".join(exc.busy_ids),
            )
            return ReparentResult(ReparentOutcome.BUSY, action, source, target)
        finally:
            # Re-fetch even after a failure so the view shows server state.
            if dispatched and self.on_update is not None:
                self.on_update()

    def _run_step(self, action: ReparentAction, step: RemoteCall, result: ReparentResult) -> None:
        """Issue one remote call; raise only when it is authoritative."""
        if step.method == ASSIGN_REPORTING and step.subject_id == step.value:
            logger.debug("Skipping self-referencing link for %s", step.subject_id)
            return

        result.calls.append(step)
        try:
            if step.method == ASSIGN_HEAD:
                self.client.assign_department_head(step.subject_id, step.value)
            else:
                self.client.assign_reporting_position(step.subject_id, step.value)
        except OrgApiError as exc:
            step.succeeded = False
            step.error = exc.message
            if step.authoritative:
                logger.error(
                    "%s failed at %s(%s, %s): %s",
                    action.value,
                    step.method,
                    step.subject_id,
                    step.value,
                    exc.message,
                )
                raise AuthoritativeFailure(action.value, exc) from exc

            warning = f"{step.method}({step.subject_id}, {step.value}) failed: {exc.message}"
            logger.warning("%s: %s", action.value, warning)
            result.warnings.append(warning)
            return

        step.succeeded = True

    # =====================================================================
    # Guards
    # =====================================================================

    @staticmethod
    def _require_source(source_id: Any) -> str:
        source = normalize(source_id)
        if not source:
            raise ValueError("source_id is required")
        return source

    @staticmethod
    def _check_cycle(source: str, target: str, positions: Iterable[Position]) -> None:
        """Refuse to put ``source`` under one of its own descendants."""
        if source in reporting_chain(target, positions):
            logger.warning("Refusing to move %s under its descendant %s", source, target)
            raise CycleDetected(source, target)
