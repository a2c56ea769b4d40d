"""Translate leave workflow errors into DRF responses."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

from rest_framework import status
from rest_framework.exceptions import APIException

from hr_leave.leaves.exceptions import BalanceError
from hr_leave.leaves.exceptions import InvalidLeaveRequestError
from hr_leave.leaves.exceptions import NoApproverFoundError
from hr_leave.leaves.exceptions import NotFoundError
from hr_leave.leaves.exceptions import PermissionDeniedError
from hr_leave.leaves.exceptions import StateConflictError
from hr_leave.leaves.exceptions import WorkflowInitError


class LeaveNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class LeaveStateConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The leave request is not in a state that allows this action."
    default_code = "state_conflict"


class NoApproverAvailable(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "No approver could be found for this request."
    default_code = "no_approver"


class LeavePermissionDenied(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Permission denied."
    default_code = "permission_denied"


class InvalidLeaveInput(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid"


class WorkflowUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The approval workflow could not be started."
    default_code = "workflow_init_failed"


def to_api_exception(exc: Exception) -> APIException | None:
    """Matching API exception for a domain error, or None if it is not one."""

    if isinstance(exc, NotFoundError):
        return LeaveNotFound({"detail": str(exc)})
    if isinstance(exc, StateConflictError):
        return LeaveStateConflict({"detail": str(exc)})
    if isinstance(exc, NoApproverFoundError):
        return NoApproverAvailable(
            {"detail": exc.reason, "leave_request_id": exc.leave_request_id}
        )
    if isinstance(exc, WorkflowInitError):
        return WorkflowUnavailable(
            {"detail": exc.reason, "leave_request_id": exc.leave_request_id}
        )
    if isinstance(exc, PermissionDeniedError):
        return LeavePermissionDenied(
            {"detail": str(exc), "permission": exc.permission}
        )
    if isinstance(exc, InvalidLeaveRequestError | BalanceError):
        return InvalidLeaveInput({"detail": str(exc)})
    return None


@contextlib.contextmanager
def translate_errors() -> Iterator[None]:
    try:
        yield
    except (
        NotFoundError,
        StateConflictError,
        NoApproverFoundError,
        WorkflowInitError,
        PermissionDeniedError,
        InvalidLeaveRequestError,
        BalanceError,
    ) as exc:
        raise to_api_exception(exc) from exc
