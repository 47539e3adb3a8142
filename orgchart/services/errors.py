"""
Exception hierarchy for the hierarchy engine and the org-structure API.

Self-drops and chaining failures are deliberately absent: a self-drop is
reported as ``ReparentOutcome.NOOP`` and a failed best-effort call is a
warning on the ``ReparentResult``, never an exception.
"""


class HierarchyError(Exception):
    """Base class for every error raised by the hierarchy engine."""


class BusyConflict(HierarchyError):
    """A position named by the gesture already has an operation in flight."""

    def __init__(self, busy_ids):
        self.busy_ids = sorted(busy_ids)
        super().__init__(
            f"Operation already in progress for: {', '.join(self.busy_ids)}"
        )


class CycleDetected(HierarchyError):
    """Re-parenting ``source_id`` under ``target_id`` would create a loop."""

    def __init__(self, source_id: str, target_id: str):
        self.source_id = source_id
        self.target_id = target_id
        super().__init__(
            f"Position {source_id} cannot report to {target_id}: "
            "circular reporting relationship detected."
        )


class OrgApiError(HierarchyError):
    """
    A call to the org-structure API failed.

    ``message`` carries the backend's own message when it sent one, so
    the caller can surface it unchanged.
    """

    def __init__(self, message: str, status: int | None = None):
        self.message = message
        self.status = status
        super().__init__(message)


class AuthoritativeFailure(HierarchyError):
    """
    The call that decides whether a mutation succeeded was rejected.

    Raised by ``ReparentOperation`` after the host has been asked to
    re-fetch.  No later step of the branch was attempted.
    """

    def __init__(self, action: str, cause: Exception):
        self.action = action
        self.cause = cause
        self.message = getattr(cause, "message", None) or str(cause)
        self.status = getattr(cause, "status", None)
        super().__init__(self.message)
