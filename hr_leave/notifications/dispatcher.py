"""Leave workflow notifications.

Each dispatch records an in-app ``Notification`` for the recipient and
queues an email once the surrounding transaction commits. Delivery is
fire-and-forget: every failure is logged and swallowed so a notification
problem can never undo a workflow decision.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from hr_leave.notifications.models import Notification
from hr_leave.notifications.tasks import send_leave_email

if TYPE_CHECKING:
    from hr_leave.leaves.models import LeaveRequest
    from hr_leave.users.models import User

logger = logging.getLogger(__name__)

_DECISION_EVENTS = {
    "approved": Notification.Event.APPROVED,
    "rejected": Notification.Event.REJECTED,
    "cancelled": Notification.Event.CANCELLED,
}


def _period(leave_request: LeaveRequest) -> str:
    return f"{leave_request.start_date:%Y-%m-%d} to {leave_request.end_date:%Y-%m-%d}"


class NotificationDispatcher:
    def send_leave_approval_notification(
        self, leave_request: LeaveRequest, approver: User, level: int
    ) -> None:
        """Tell ``approver`` a request is waiting for them at ``level``."""

        try:
            requester = leave_request.user
            title = "Leave approval required"
            message = (
                f"{requester.display_name} requested {leave_request.leave_type} leave "
                f"({_period(leave_request)}). Your approval is needed at level {level}."
            )
            self._notify(
                approver,
                Notification.Event.APPROVAL_REQUIRED,
                leave_request,
                level,
                title,
                message,
            )
        except Exception:
            logger.exception(
                "Failed to send approval notification for leave request %s",
                leave_request.pk,
            )

    def send_leave_status_update(  # noqa: PLR0913
        self,
        leave_request: LeaveRequest,
        requester: User,
        decision: str,
        actor: User | None,
        level: int,
    ) -> None:
        """Tell the requester their request was approved, rejected or cancelled."""

        try:
            event = _DECISION_EVENTS[decision]
            by = f" by {actor.display_name}" if actor is not None else ""
            title = f"Leave request {decision}"
            message = (
                f"Your {leave_request.leave_type} leave request "
                f"({_period(leave_request)}) was {decision}{by} at level {level}."
            )
            if leave_request.approval_notes:
                message = f"{message}\n\nNotes: {leave_request.approval_notes}"
            self._notify(requester, event, leave_request, level, title, message)
        except Exception:
            logger.exception(
                "Failed to send status update for leave request %s", leave_request.pk
            )

    def _notify(self, recipient, event, leave_request, level, title, message):  # noqa: PLR0913
        with transaction.atomic():
            Notification.objects.create(
                recipient=recipient,
                leave_request=leave_request,
                event=event,
                level=level,
                title=title,
                message=message,
            )
        email = getattr(recipient, "email", "")
        if email:
            transaction.on_commit(lambda: self._deliver(email, title, message))

    @staticmethod
    def _deliver(email: str, subject: str, body: str) -> None:
        try:
            send_leave_email.delay(email, subject, body)
        except Exception:
            logger.exception("Failed to queue leave email to %s", email)
