from __future__ import annotations

from hr_leave.rbac.exceptions import PermissionDeniedError

__all__ = [
    "BalanceError",
    "InvalidLeaveRequestError",
    "LeaveWorkflowError",
    "NoApproverFoundError",
    "NotFoundError",
    "PermissionDeniedError",
    "StateConflictError",
    "WorkflowInitError",
]


class LeaveWorkflowError(Exception):
    """Base class for leave workflow errors."""


class NotFoundError(LeaveWorkflowError):
    """A leave request, workflow entry or user does not exist."""


class InvalidLeaveRequestError(LeaveWorkflowError):
    """Input rejected before any state changed (bad dates, type or decision)."""


class StateConflictError(LeaveWorkflowError):
    """Decision at the wrong level, by the wrong actor, or on a decided entry."""


class NoApproverFoundError(LeaveWorkflowError):
    """Routing found nobody; the request was moved to ``error_no_approver``."""

    def __init__(self, reason: str, *, leave_request_id: int | None = None):
        self.reason = reason
        self.leave_request_id = leave_request_id
        super().__init__(reason)


class WorkflowInitError(LeaveWorkflowError):
    """Creating the first workflow step failed; the request is ``error_workflow_init``."""

    def __init__(self, reason: str, *, leave_request_id: int | None = None):
        self.reason = reason
        self.leave_request_id = leave_request_id
        super().__init__(reason)


class BalanceError(LeaveWorkflowError):
    """A balance mutation was refused."""
