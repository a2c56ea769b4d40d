from __future__ import annotations

from django.contrib.auth import get_user_model
from django.utils import timezone

from hr_leave.leaves.models import LeaveRequest
from tests.mixins import ROLE_ADMIN
from tests.mixins import ROLE_EMPLOYEE
from tests.mixins import ROLE_HR_MANAGER
from tests.mixins import ROLE_MANAGER
from tests.mixins import ROLE_PAYROLL
from tests.mixins import LeaveAPITestCase

PAYLOAD = {
    "leave_type": "annual",
    "start_date": "2025-06-02",
    "end_date": "2025-06-04",
    "reason": "Family trip",
}


class TestCreateLeaveRequest(LeaveAPITestCase):
    def test_employee_creates_request(self):
        res = self.post("api_v1:leave-request-list", who=ROLE_EMPLOYEE, payload=PAYLOAD)
        self.assert_http_status(res, 201)
        assert res.data["status"] == "pending"
        assert res.data["current_approval_level"] == 1
        assert res.data["days"] == 3

    def test_type_alias(self):
        payload = {**PAYLOAD, "type": "sick"}
        payload.pop("leave_type")
        res = self.post("api_v1:leave-request-list", who=ROLE_EMPLOYEE, payload=payload)
        self.assert_http_status(res, 201)
        assert res.data["leave_type"] == "sick"

    def test_reversed_dates_rejected(self):
        payload = {**PAYLOAD, "start_date": "2025-06-05"}
        res = self.post("api_v1:leave-request-list", who=ROLE_EMPLOYEE, payload=payload)
        self.assert_http_status(res, 400)
        assert not LeaveRequest.objects.exists()

    def test_missing_type_rejected(self):
        payload = {k: v for k, v in PAYLOAD.items() if k != "leave_type"}
        res = self.post("api_v1:leave-request-list", who=ROLE_EMPLOYEE, payload=payload)
        self.assert_http_status(res, 400)

    def test_no_approver_is_unprocessable(self):
        get_user_model().objects.filter(
            pk__in=[
                self.users[ROLE_HR_MANAGER].pk,
                self.users[ROLE_ADMIN].pk,
                self.users["owner"].pk,
            ]
        ).update(is_active=False)

        res = self.post("api_v1:leave-request-list", who="outsider", payload=PAYLOAD)

        self.assert_http_status(res, 422)
        leave_request = LeaveRequest.objects.get(pk=res.data["leave_request_id"])
        assert leave_request.status == LeaveRequest.Status.ERROR_NO_APPROVER
        assert "Sales" in res.data["detail"]

    def test_owner_request_is_auto_approved(self):
        res = self.post("api_v1:leave-request-list", who="owner", payload=PAYLOAD)
        self.assert_http_status(res, 201)
        assert res.data["status"] == "approved"


class TestReadLeaveRequests(LeaveAPITestCase):
    def setUp(self):
        super().setUp()
        res = self.post("api_v1:leave-request-list", who=ROLE_EMPLOYEE, payload=PAYLOAD)
        self.leave_request_id = res.data["id"]
        self.post("api_v1:leave-request-list", who="outsider", payload=PAYLOAD)

    def _detail(self, who):
        return self.get(
            "api_v1:leave-request-detail",
            who=who,
            reverse_kwargs={"pk": self.leave_request_id},
        )

    def test_list_is_scoped_to_own_requests(self):
        res = self.get("api_v1:leave-request-list", who=ROLE_EMPLOYEE)
        self.assert_http_status(res, 200)
        assert [r["id"] for r in self.extract_results(res)] == [self.leave_request_id]

    def test_list_all_with_permission(self):
        res = self.get("api_v1:leave-request-list", who=ROLE_HR_MANAGER)
        assert len(self.extract_results(res)) == 2

    def test_list_status_filter(self):
        res = self.get(
            "api_v1:leave-request-list", who=ROLE_ADMIN, data={"status": "approved"}
        )
        assert self.extract_results(res) == []

    def test_detail_access(self):
        self.assert_http_status(self._detail(ROLE_EMPLOYEE), 200)
        self.assert_http_status(self._detail("colleague"), 200)
        self.assert_http_status(self._detail(ROLE_MANAGER), 200)
        self.assert_denied(self._detail("outsider"))

    def test_workflow(self):
        res = self.get(
            "api_v1:leave-request-workflow",
            who=ROLE_EMPLOYEE,
            reverse_kwargs={"pk": self.leave_request_id},
        )
        self.assert_http_status(res, 200)
        assert [(e["approval_level"], e["status"]) for e in res.data] == [
            (1, "pending")
        ]
        assert res.data[0]["approver"] == self.users[ROLE_MANAGER].pk

    def test_stats_requires_read_all(self):
        self.assert_denied(self.get("api_v1:leave-request-stats", who=ROLE_EMPLOYEE))
        res = self.get("api_v1:leave-request-stats", who=ROLE_HR_MANAGER)
        self.assert_http_status(res, 200)
        assert res.data["pending"] == 2
        assert res.data["total"] == 2

    def test_pending_approvals(self):
        res = self.get("api_v1:leave-approvals-pending", who=ROLE_MANAGER)
        self.assert_http_status(res, 200)
        results = self.extract_results(res)
        assert [r["leave_request"]["id"] for r in results] == [self.leave_request_id]

        res = self.get("api_v1:leave-approvals-pending", who=ROLE_EMPLOYEE)
        assert self.extract_results(res) == []


class TestDecideAndCancel(LeaveAPITestCase):
    def setUp(self):
        super().setUp()
        res = self.post("api_v1:leave-request-list", who=ROLE_EMPLOYEE, payload=PAYLOAD)
        self.leave_request_id = res.data["id"]

    def _decide(self, who, **payload):
        return self.post(
            "api_v1:leave-request-decide",
            who=who,
            payload=payload,
            reverse_kwargs={"pk": self.leave_request_id},
        )

    def _cancel(self, who):
        return self.post(
            "api_v1:leave-request-cancel",
            who=who,
            reverse_kwargs={"pk": self.leave_request_id},
        )

    def test_manager_approves(self):
        res = self._decide(ROLE_MANAGER, level=1, decision="approve", comments="ok")
        self.assert_http_status(res, 200)
        assert res.data["status"] == "approved"

        balance = self.get(
            "api_v1:leave-balance", who=ROLE_EMPLOYEE, data={"year": 2025}
        )
        assert balance.data["annual_leave"] == 17

    def test_repeat_decision_conflicts(self):
        self._decide(ROLE_MANAGER, level=1, decision="reject")
        res = self._decide(ROLE_MANAGER, level=1, decision="approve")
        self.assert_http_status(res, 409)

    def test_non_approver_conflicts(self):
        res = self._decide(ROLE_EMPLOYEE, level=1, decision="approve")
        self.assert_http_status(res, 409)

    def test_bad_decision_payload(self):
        res = self._decide(ROLE_MANAGER, level=0, decision="maybe")
        self.assert_http_status(res, 400)

    def test_unknown_request(self):
        res = self.post(
            "api_v1:leave-request-decide",
            who=ROLE_MANAGER,
            payload={"level": 1, "decision": "approve"},
            reverse_kwargs={"pk": 999999},
        )
        self.assert_http_status(res, 404)

    def test_requester_cancels(self):
        res = self._cancel(ROLE_EMPLOYEE)
        self.assert_http_status(res, 200)
        assert res.data["status"] == "cancelled"
        self.assert_http_status(self._cancel(ROLE_EMPLOYEE), 409)

    def test_other_user_cannot_cancel(self):
        self.assert_denied(self._cancel("colleague"))
        self.assert_denied(self._cancel("outsider"))


class TestLeaveBalance(LeaveAPITestCase):
    def test_own_balance(self):
        res = self.get("api_v1:leave-balance", who=ROLE_EMPLOYEE)
        self.assert_http_status(res, 200)
        assert res.data["year"] == timezone.localdate().year
        assert res.data["annual_leave"] == 20

    def test_other_balance_needs_permission(self):
        other = {"user_id": self.users["colleague"].pk}
        self.assert_denied(self.get("api_v1:leave-balance", who=ROLE_EMPLOYEE, data=other))
        res = self.get("api_v1:leave-balance", who=ROLE_HR_MANAGER, data=other)
        self.assert_http_status(res, 200)
        assert res.data["user"] == self.users["colleague"].pk

    def test_invalid_query(self):
        res = self.get("api_v1:leave-balance", who=ROLE_EMPLOYEE, data={"year": "x"})
        self.assert_http_status(res, 400)

    def test_adjust(self):
        payload = {
            "user_id": self.users[ROLE_EMPLOYEE].pk,
            "leave_type": "annual",
            "kind": "add",
            "amount": 2,
            "reason": "Overtime compensation",
            "year": 2025,
        }
        self.assert_denied(
            self.post("api_v1:leave-balance-adjust", who=ROLE_PAYROLL, payload=payload)
        )

        res = self.post("api_v1:leave-balance-adjust", who=ROLE_HR_MANAGER, payload=payload)

        self.assert_http_status(res, 201)
        assert res.data["adjustment_type"] == "manual_add"
        assert res.data["new_value"] == 22

    def test_adjust_below_zero(self):
        payload = {
            "user_id": self.users[ROLE_EMPLOYEE].pk,
            "leave_type": "death",
            "kind": "reduce",
            "amount": 5,
            "reason": "Correction",
        }
        res = self.post("api_v1:leave-balance-adjust", who=ROLE_ADMIN, payload=payload)
        self.assert_http_status(res, 400)
        assert "below zero" in res.data["detail"]

    def test_adjust_unknown_user(self):
        payload = {
            "user_id": 999999,
            "leave_type": "annual",
            "kind": "add",
            "amount": 1,
            "reason": "x",
        }
        res = self.post("api_v1:leave-balance-adjust", who=ROLE_ADMIN, payload=payload)
        self.assert_http_status(res, 404)
