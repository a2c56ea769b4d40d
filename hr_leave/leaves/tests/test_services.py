from datetime import date
from unittest import mock

import pytest
from django.db import DatabaseError

from hr_leave.audit.models import AuditLog
from hr_leave.leaves.exceptions import InvalidLeaveRequestError
from hr_leave.leaves.exceptions import NoApproverFoundError
from hr_leave.leaves.exceptions import NotFoundError
from hr_leave.leaves.exceptions import PermissionDeniedError
from hr_leave.leaves.exceptions import StateConflictError
from hr_leave.leaves.exceptions import WorkflowInitError
from hr_leave.leaves.models import ApprovalWorkflowEntry
from hr_leave.leaves.models import LeaveBalance
from hr_leave.leaves.models import LeaveBalanceAudit
from hr_leave.leaves.models import LeaveRequest
from hr_leave.leaves.routing import ApprovalRouter
from hr_leave.leaves.services import WorkflowEngine
from hr_leave.notifications.models import Notification
from hr_leave.rbac.gate import AuthorizationGate
from tests.factories import make_department
from tests.factories import make_user

Status = LeaveRequest.Status
EntryStatus = ApprovalWorkflowEntry.Status
START = date(2025, 6, 2)
END = date(2025, 6, 4)


@pytest.fixture
def engine():
    return WorkflowEngine()


@pytest.fixture
def org(db):
    """Engineering with a designated manager, an HR manager, an owner and an admin."""

    manager = make_user("mgr", role="manager", department="Engineering")
    make_department("Engineering", manager=manager)
    return {
        "manager": manager,
        "employee": make_user("emp", department="Engineering"),
        "hr_manager": make_user("hrm", role="hr_manager", department="HR"),
        "owner": make_user("boss", is_owner=True),
        "admin": make_user("adm", role="admin"),
    }


def _deductions(user):
    return LeaveBalanceAudit.objects.filter(
        leave_balance__user=user,
        adjustment_type=LeaveBalanceAudit.AdjustmentType.APPROVAL_DEDUCTION,
    )


class TestCreateLeaveRequest:
    def test_routes_to_department_manager(self, engine, org):
        leave_request = engine.create_leave_request(
            org["employee"].pk, "annual", START, END, "Family trip"
        )

        assert leave_request.status == Status.PENDING
        assert leave_request.current_approval_level == 1
        entry = leave_request.workflow_entries.get()
        assert entry.approver == org["manager"]
        assert entry.approval_level == 1
        assert entry.status == EntryStatus.PENDING
        assert entry.approver_role == "department_manager"

    def test_owner_is_auto_approved(self, engine, org):
        owner = org["owner"]

        leave_request = engine.create_leave_request(owner.pk, "annual", START, END)

        leave_request.refresh_from_db()
        assert leave_request.status == Status.APPROVED
        assert leave_request.approved_by == owner
        entry = leave_request.workflow_entries.get()
        assert entry.status == EntryStatus.APPROVED
        assert entry.approver_role == "owner_auto_approved"
        assert entry.approved_at is not None
        assert _deductions(owner).count() == 1

    def test_no_approver(self, engine, db):
        loner = make_user("loner", department="Sales")

        with pytest.raises(NoApproverFoundError) as excinfo:
            engine.create_leave_request(loner.pk, "annual", START, END)

        leave_request = LeaveRequest.objects.get(pk=excinfo.value.leave_request_id)
        assert leave_request.status == Status.ERROR_NO_APPROVER
        assert leave_request.current_approval_level == 0
        assert "Sales" in leave_request.approval_notes
        assert not leave_request.workflow_entries.exists()

    def test_workflow_init_failure(self, engine, org):
        with mock.patch.object(
            ApprovalRouter, "select_approver", side_effect=DatabaseError("boom")
        ):
            with pytest.raises(WorkflowInitError) as excinfo:
                engine.create_leave_request(org["employee"].pk, "annual", START, END)

        leave_request = LeaveRequest.objects.get(pk=excinfo.value.leave_request_id)
        assert leave_request.status == Status.ERROR_WORKFLOW_INIT
        assert not leave_request.workflow_entries.exists()

    def test_rejects_reversed_dates(self, engine, org):
        with pytest.raises(InvalidLeaveRequestError):
            engine.create_leave_request(org["employee"].pk, "annual", END, START)
        assert not LeaveRequest.objects.exists()

    def test_rejects_unknown_type(self, engine, org):
        with pytest.raises(InvalidLeaveRequestError):
            engine.create_leave_request(org["employee"].pk, "sabbatical", START, END)

    def test_unknown_requester(self, engine, db):
        with pytest.raises(NotFoundError):
            engine.create_leave_request(999999, "annual", START, END)

    def test_approver_is_notified_after_commit(
        self, engine, org, django_capture_on_commit_callbacks, mailoutbox
    ):
        with django_capture_on_commit_callbacks(execute=True):
            engine.create_leave_request(org["employee"].pk, "annual", START, END)

        notification = Notification.objects.get(recipient=org["manager"])
        assert notification.event == Notification.Event.APPROVAL_REQUIRED
        assert [m.to for m in mailoutbox] == [[org["manager"].email]]


class TestDecide:
    def _pending(self, engine, requester):
        return engine.create_leave_request(requester.pk, "annual", START, END)

    def test_approval_by_department_manager(self, engine, org):
        employee = org["employee"]
        leave_request = self._pending(engine, employee)

        result = engine.decide(leave_request.pk, 1, org["manager"].pk, "approve", "ok")

        assert result.status == Status.APPROVED
        assert result.approved_by == org["manager"]
        assert LeaveBalance.objects.get(user=employee, year=2025).annual_leave == 17
        entry = result.workflow_entries.get()
        assert entry.status == EntryStatus.APPROVED
        assert entry.comments == "ok"

    def test_rejection_leaves_balance_alone(self, engine, org):
        employee = org["employee"]
        leave_request = self._pending(engine, employee)

        result = engine.decide(leave_request.pk, 1, org["manager"].pk, "reject", "no")

        assert result.status == Status.REJECTED
        assert result.approval_notes == "no"
        assert not _deductions(employee).exists()

    def test_second_decision_conflicts(self, engine, org):
        leave_request = self._pending(engine, org["employee"])
        engine.decide(leave_request.pk, 1, org["manager"].pk, "approve")

        with pytest.raises(StateConflictError):
            engine.decide(leave_request.pk, 1, org["manager"].pk, "reject")

        leave_request.refresh_from_db()
        assert leave_request.status == Status.APPROVED
        assert _deductions(org["employee"]).count() == 1
        assert AuditLog.objects.filter(action="leave_decision_conflict").count() == 1

    def test_wrong_level_conflicts(self, engine, org):
        leave_request = self._pending(engine, org["employee"])
        with pytest.raises(StateConflictError, match="level 2"):
            engine.decide(leave_request.pk, 2, org["manager"].pk, "approve")
        leave_request.refresh_from_db()
        assert leave_request.status == Status.PENDING

    def test_wrong_actor_conflicts(self, engine, org):
        leave_request = self._pending(engine, org["employee"])
        with pytest.raises(StateConflictError):
            engine.decide(leave_request.pk, 1, org["hr_manager"].pk, "approve")

    def test_unknown_request(self, engine, org):
        with pytest.raises(NotFoundError):
            engine.decide(424242, 1, org["manager"].pk, "approve")

    def test_invalid_decision(self, engine, org):
        leave_request = self._pending(engine, org["employee"])
        with pytest.raises(InvalidLeaveRequestError):
            engine.decide(leave_request.pk, 1, org["manager"].pk, "maybe")

    def test_gate_denial_keeps_request_pending(self, engine, org):
        leave_request = self._pending(engine, org["employee"])
        denied = mock.Mock(allowed=False, rule="denied")
        with mock.patch.object(AuthorizationGate, "check", return_value=denied):
            with pytest.raises(PermissionDeniedError):
                engine.decide(leave_request.pk, 1, org["manager"].pk, "approve")

        leave_request.refresh_from_db()
        assert leave_request.status == Status.PENDING
        assert leave_request.workflow_entries.get().status == EntryStatus.PENDING

    def test_owner_approves_via_assignment(self, engine, db):
        owner = make_user("boss", is_owner=True)
        employee = make_user("emp", department="Sales")
        leave_request = self._pending(engine, employee)
        assert leave_request.current_approval_level == 3

        result = engine.decide(leave_request.pk, 3, owner.pk, "approved")

        assert result.status == Status.APPROVED

    def test_manager_request_escalates_to_hr_manager(self, engine, org):
        requester = make_user("lead", role="manager", department="Engineering")
        leave_request = self._pending(engine, requester)
        assert leave_request.current_approval_level == 1

        escalated = engine.decide(leave_request.pk, 1, org["manager"].pk, "approve")

        assert escalated.status == Status.PENDING
        assert escalated.current_approval_level == 2
        entries = list(escalated.workflow_entries.order_by("approval_level"))
        assert [(e.approval_level, e.status) for e in entries] == [
            (1, EntryStatus.APPROVED),
            (2, EntryStatus.PENDING),
        ]
        assert entries[1].approver == org["hr_manager"]
        assert not _deductions(requester).exists()

        final = engine.decide(leave_request.pk, 2, org["hr_manager"].pk, "approve")

        assert final.status == Status.APPROVED
        assert final.current_approval_level == 2
        assert _deductions(requester).count() == 1

    def test_status_update_sent_to_requester(
        self, engine, org, django_capture_on_commit_callbacks, mailoutbox
    ):
        leave_request = self._pending(engine, org["employee"])

        with django_capture_on_commit_callbacks(execute=True):
            engine.decide(leave_request.pk, 1, org["manager"].pk, "reject", "busy")

        notification = Notification.objects.get(recipient=org["employee"])
        assert notification.event == Notification.Event.REJECTED
        assert "busy" in notification.message
        assert mailoutbox[-1].to == [org["employee"].email]


class TestCancelAndQueries:
    def test_requester_cancels_pending(self, engine, org):
        leave_request = engine.create_leave_request(
            org["employee"].pk, "annual", START, END
        )

        result = engine.cancel(leave_request.pk, org["employee"].pk)

        assert result.status == Status.CANCELLED
        assert result.is_terminal
        step = engine.get_workflow(leave_request.pk)[0]
        assert step.status == EntryStatus.CANCELLED
        assert step.comments == "Cancelled by requester"
        assert not engine.get_pending_approvals_for(org["manager"].pk).exists()

    def test_only_requester_may_cancel(self, engine, org):
        leave_request = engine.create_leave_request(
            org["employee"].pk, "annual", START, END
        )
        with pytest.raises(PermissionDeniedError):
            engine.cancel(leave_request.pk, org["manager"].pk)

        denial = AuditLog.objects.get(
            action="permission_check",
            resource_type="leave_request",
            resource_id=leave_request.pk,
        )
        assert denial.actor == org["manager"]
        assert denial.details == {
            "permission": "cancel:leave_request",
            "allowed": False,
            "rule": "not_requester",
        }
        leave_request.refresh_from_db()
        assert leave_request.status == Status.PENDING

    def test_decided_request_cannot_be_cancelled(self, engine, org):
        leave_request = engine.create_leave_request(
            org["employee"].pk, "annual", START, END
        )
        engine.decide(leave_request.pk, 1, org["manager"].pk, "approve")
        with pytest.raises(StateConflictError):
            engine.cancel(leave_request.pk, org["employee"].pk)

        conflict = AuditLog.objects.get(action="leave_decision_conflict")
        assert conflict.actor == org["employee"]
        assert conflict.resource_id == leave_request.pk
        assert conflict.details == {
            "level": 1,
            "decision": "cancelled",
            "status": "approved",
        }

    def test_pending_approvals_only_current_level(self, engine, org):
        requester = make_user("lead", role="manager", department="Engineering")
        leave_request = engine.create_leave_request(requester.pk, "sick", START, END)

        pending = engine.get_pending_approvals_for(org["manager"].pk)
        assert [entry.leave_request_id for entry in pending] == [leave_request.pk]

        engine.decide(leave_request.pk, 1, org["manager"].pk, "approve")

        assert not engine.get_pending_approvals_for(org["manager"].pk).exists()
        assert engine.get_pending_approvals_for(org["hr_manager"].pk).count() == 1

    def test_get_workflow_in_level_order(self, engine, org):
        requester = make_user("lead", role="manager", department="Engineering")
        leave_request = engine.create_leave_request(requester.pk, "sick", START, END)
        engine.decide(leave_request.pk, 1, org["manager"].pk, "approve")

        levels = [e.approval_level for e in engine.get_workflow(leave_request.pk)]

        assert levels == [1, 2]
        with pytest.raises(NotFoundError):
            engine.get_workflow(424242)

    def test_stats(self, engine, org):
        engine.create_leave_request(org["employee"].pk, "annual", START, END)
        engine.create_leave_request(org["owner"].pk, "annual", START, END)

        stats = engine.stats()

        assert stats["pending"] == 1
        assert stats["approved"] == 1
        assert stats["rejected"] == 0
        assert stats["total"] == 2
