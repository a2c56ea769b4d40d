from datetime import date
from unittest import mock

import pytest

from hr_leave.notifications.dispatcher import NotificationDispatcher
from hr_leave.notifications.models import Notification
from tests.factories import make_leave_request
from tests.factories import make_user


@pytest.fixture
def leave_request(db):
    requester = make_user("emp", department="Engineering")
    return make_leave_request(
        requester, start_date=date(2025, 6, 2), end_date=date(2025, 6, 4)
    )


@pytest.mark.django_db
class TestNotificationDispatcher:
    def test_approval_request_notification(
        self, leave_request, django_capture_on_commit_callbacks, mailoutbox
    ):
        approver = make_user("mgr", role="manager")

        with django_capture_on_commit_callbacks(execute=True):
            NotificationDispatcher().send_leave_approval_notification(
                leave_request, approver, 1
            )

        notification = Notification.objects.get(recipient=approver)
        assert notification.event == Notification.Event.APPROVAL_REQUIRED
        assert "2025-06-02 to 2025-06-04" in notification.message
        assert "level 1" in notification.message
        assert notification.leave_request == leave_request
        assert notification.level == 1
        assert len(mailoutbox) == 1
        assert mailoutbox[0].subject == "Leave approval required"

    @pytest.mark.parametrize(
        ("decision", "expected_event"),
        [
            ("approved", Notification.Event.APPROVED),
            ("rejected", Notification.Event.REJECTED),
            ("cancelled", Notification.Event.CANCELLED),
        ],
    )
    def test_status_update(self, leave_request, decision, expected_event):
        actor = make_user("mgr", role="manager")

        NotificationDispatcher().send_leave_status_update(
            leave_request, leave_request.user, decision, actor, 1
        )

        notification = Notification.objects.get(recipient=leave_request.user)
        assert notification.event == expected_event
        assert notification.title == f"Leave request {decision}"

    def test_email_is_not_sent_before_commit(self, leave_request, mailoutbox):
        NotificationDispatcher().send_leave_status_update(
            leave_request, leave_request.user, "approved", None, 1
        )
        assert mailoutbox == []

    def test_failures_are_swallowed(self, leave_request):
        with mock.patch.object(
            Notification.objects, "create", side_effect=RuntimeError("db gone")
        ), mock.patch("hr_leave.notifications.dispatcher.logger") as logger:
            NotificationDispatcher().send_leave_approval_notification(
                leave_request, leave_request.user, 1
            )
        logger.exception.assert_called_once()

    def test_queue_failure_is_swallowed(
        self, leave_request, django_capture_on_commit_callbacks
    ):
        with mock.patch(
            "hr_leave.notifications.dispatcher.send_leave_email.delay",
            side_effect=ConnectionError("broker down"),
        ), mock.patch("hr_leave.notifications.dispatcher.logger") as logger:
            with django_capture_on_commit_callbacks(execute=True):
                NotificationDispatcher().send_leave_status_update(
                    leave_request, leave_request.user, "rejected", None, 1
                )

        logger.exception.assert_called_once()
        assert Notification.objects.filter(recipient=leave_request.user).exists()
