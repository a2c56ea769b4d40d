from datetime import timedelta

import pytest
from django.test import override_settings
from django.utils import timezone

from hr_leave.leaves.models import ApprovalWorkflowEntry
from hr_leave.leaves.routing import ApprovalRouter
from tests.factories import assign_role
from tests.factories import make_department
from tests.factories import make_leave_request
from tests.factories import make_user

ApproverRole = ApprovalWorkflowEntry.ApproverRole


@pytest.fixture
def router():
    return ApprovalRouter()


def _joined(user, days_ago):
    user.date_joined = timezone.now() - timedelta(days=days_ago)
    user.save(update_fields=["date_joined"])
    return user


@pytest.mark.django_db
class TestSelectApprover:
    def test_department_manager_first(self, router):
        manager = make_user("mgr", role="manager", department="Engineering")
        make_department("Engineering", manager=manager)
        make_user("hrm", role="hr_manager", department="HR")
        make_user("adm", role="admin")
        employee = make_user("emp", department="Engineering")

        decision = router.select_approver(employee)

        assert decision.approver == manager
        assert decision.level == 1
        assert decision.approver_role == ApproverRole.DEPARTMENT_MANAGER
        assert not decision.auto_approve

    def test_manager_role_in_department_without_designation(self, router):
        older = _joined(make_user("older", role="manager", department="Ops"), 10)
        _joined(make_user("newer", role="manager", department="Ops"), 1)
        make_user("adm", role="admin")
        employee = make_user("emp", department="Ops")

        assert router.select_approver(employee).approver == older

    def test_assigned_manager_role_counts(self, router):
        lead = make_user("lead", department="Ops")
        assign_role(lead, "manager")
        make_user("adm", role="admin")
        employee = make_user("emp", department="Ops")

        assert router.select_approver(employee).approver == lead

    def test_inactive_designated_manager_is_skipped(self, router):
        manager = make_user("mgr", role="manager", department="Ops", is_active=False)
        make_department("Ops", manager=manager)
        hr_manager = make_user("hrm", role="hr_manager", department="HR")
        make_user("adm", role="admin")
        employee = make_user("emp", department="Ops")

        decision = router.select_approver(employee)

        assert decision.approver == hr_manager
        assert decision.level == 2
        assert decision.approver_role == ApproverRole.HR_MANAGER

    def test_manager_in_hr_department_acts_as_hr_manager(self, router):
        hr_lead = make_user("hrlead", role="manager", department="HR")
        make_user("adm", role="admin")
        employee = make_user("emp", department="Sales")

        decision = router.select_approver(employee)

        assert decision.approver == hr_lead
        assert decision.approver_role == ApproverRole.HR_MANAGER

    def test_admin_fallback_at_level_two(self, router):
        first = _joined(make_user("adm1", role="admin"), 30)
        _joined(make_user("adm2", role="super_admin"), 3)
        employee = make_user("emp", department="Sales")

        decision = router.select_approver(employee)

        assert decision.approver == first
        assert decision.level == 2
        assert decision.approver_role == ApproverRole.ADMIN_FALLBACK

    def test_owner_at_level_three(self, router):
        owner = make_user("boss", is_owner=True)
        employee = make_user("emp", department="Sales")

        decision = router.select_approver(employee)

        assert decision.approver == owner
        assert decision.level == 3
        assert decision.approver_role == ApproverRole.OWNER

    def test_owner_is_auto_approved(self, router):
        owner = make_user("boss", is_owner=True)
        make_user("adm", role="admin")

        decision = router.select_approver(owner)

        assert decision.auto_approve
        assert decision.approver == owner
        assert decision.level == 1
        assert decision.approver_role == ApproverRole.OWNER_AUTO_APPROVED

    def test_sole_admin_is_auto_approved(self, router):
        admin = make_user("adm", role="admin")
        make_user("emp")

        assert router.select_approver(admin).auto_approve

    def test_admin_with_owner_present_is_routed(self, router):
        admin = make_user("adm", role="admin")
        owner = make_user("boss", is_owner=True)

        decision = router.select_approver(admin)

        assert not decision.auto_approve
        assert decision.approver == owner

    def test_requester_never_approves_own_request(self, router):
        manager = make_user("mgr", role="manager", department="Ops")
        make_department("Ops", manager=manager)
        owner = make_user("boss", is_owner=True)

        decision = router.select_approver(manager)

        assert decision.approver == owner

    def test_no_approver(self, router):
        employee = make_user("emp", department="Sales")

        decision = router.select_approver(employee)

        assert decision.no_approver
        assert "Sales" in decision.reason

    def test_routing_is_deterministic(self, router):
        _joined(make_user("hrm2", role="hr_manager"), 1)
        first = _joined(make_user("hrm1", role="hr_manager"), 5)
        make_user("adm", role="admin")
        employee = make_user("emp", department="Sales")

        picks = {router.select_approver(employee).approver.pk for _ in range(5)}

        assert picks == {first.pk}


@pytest.mark.django_db
class TestEscalation:
    @pytest.mark.parametrize(
        ("legacy_role", "expected"),
        [("employee", 1), ("payroll", 1), ("hr", 2), ("manager", 2), ("hr_manager", 3)],
    )
    def test_final_level_by_role(self, router, legacy_role, expected):
        user = make_user("someone", role=legacy_role)
        assert router.final_level_for(user) == expected

    def test_assigned_role_raises_depth(self, router):
        user = make_user("someone")
        assign_role(user, "hr_manager")
        assert router.final_level_for(user) == 3

    @override_settings(LEAVE_ESCALATION_DEPTH={"employee": 9})
    def test_depth_is_capped(self, router):
        assert router.final_level_for(make_user("someone")) == 3

    def test_next_approver_for_manager_request(self, router):
        make_user("boss", is_owner=True)
        hr_manager = make_user("hrm", role="hr_manager", department="HR")
        requester = make_user("mgr", role="manager", department="Ops")
        leave_request = make_leave_request(requester, current_approval_level=1)

        assert router.next_approver(leave_request, 1).approver == hr_manager
        assert router.next_approver(leave_request, 2) is None

    def test_next_approver_skips_previous_approvers(self, router):
        first_admin = _joined(make_user("adm1", role="admin"), 10)
        second_admin = _joined(make_user("adm2", role="admin"), 5)
        requester = make_user("hrm", role="hr_manager", department="HR")
        leave_request = make_leave_request(requester, current_approval_level=2)
        ApprovalWorkflowEntry.objects.create(
            leave_request=leave_request,
            approval_level=2,
            approver=first_admin,
            approver_role=ApproverRole.ADMIN_FALLBACK,
            status=ApprovalWorkflowEntry.Status.APPROVED,
        )

        decision = router.next_approver(leave_request, 2)

        assert decision.approver == second_admin
        assert decision.level == 3
        assert decision.approver_role == ApproverRole.ADMIN_FALLBACK

    def test_employee_request_stops_at_level_one(self, router):
        make_user("boss", is_owner=True)
        requester = make_user("emp")
        leave_request = make_leave_request(requester, current_approval_level=1)

        assert router.next_approver(leave_request, 1) is None
