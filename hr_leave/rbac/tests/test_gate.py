from unittest import mock

import pytest

from hr_leave.audit.models import AuditLog
from hr_leave.rbac.catalog import RbacCatalog
from hr_leave.rbac.exceptions import PermissionDeniedError
from hr_leave.rbac.gate import RULE_ADMIN_TIER
from hr_leave.rbac.gate import RULE_BYPASS
from hr_leave.rbac.gate import RULE_DENIED
from hr_leave.rbac.gate import RULE_DEPARTMENT
from hr_leave.rbac.gate import RULE_EXACT
from hr_leave.rbac.gate import RULE_OWNER
from hr_leave.rbac.gate import RULE_PATTERN
from hr_leave.rbac.gate import AccessContext
from hr_leave.rbac.gate import AuthorizationGate
from hr_leave.rbac.resolver import load_auth_data
from tests.factories import make_leave_request
from tests.factories import make_user


@pytest.fixture
def gate():
    return AuthorizationGate(catalog=RbacCatalog.from_settings({}), audit_sink=None)


class TestRuleOrder:
    def test_bypass_role_wins(self, gate):
        decision = gate.check(
            {"payroll"},
            set(),
            "manage:role",
            AccessContext(bypass_for_roles=("payroll",)),
        )
        assert decision.allowed
        assert decision.rule == RULE_BYPASS

    def test_admin_tier(self, gate):
        assert gate.check({"admin"}, set(), "manage:role").rule == RULE_ADMIN_TIER

    def test_wildcard_permission_is_admin_tier(self, gate):
        assert gate.check(set(), {"*"}, "manage:role").rule == RULE_ADMIN_TIER

    def test_exact_grant(self, gate):
        decision = gate.check({"employee"}, {"manage:role"}, "manage:role")
        assert decision.rule == RULE_EXACT

    def test_role_pattern(self, gate):
        decision = gate.check({"manager"}, set(), "read:audit_log")
        assert decision.rule == RULE_PATTERN

    def test_scoped_pattern_does_not_widen(self, gate):
        decision = gate.check({"employee"}, set(), "read:leave_request:all")
        assert not decision
        assert decision.rule == RULE_DENIED

    def test_protected_resource_skips_patterns(self, gate):
        decision = gate.check({"hr_manager"}, set(), "manage:role")
        assert decision.rule == RULE_DENIED

    def test_unknown_role_is_denied(self, gate):
        assert gate.check({"contractor"}, set(), "read:user").rule == RULE_DENIED


@pytest.mark.django_db
class TestResourceRules:
    def test_owner_of_leave_request(self, gate):
        owner = make_user("owner", department="Engineering")
        leave_request = make_leave_request(owner)
        context = AccessContext(
            user_id=owner.pk,
            resource_type="leave_request",
            resource_id=leave_request.pk,
            allow_owner=True,
        )
        decision = gate.check({"employee"}, set(), "read:leave_request:all", context)
        assert decision.rule == RULE_OWNER

    def test_owner_rule_requires_opt_in(self, gate):
        owner = make_user("owner")
        leave_request = make_leave_request(owner)
        context = AccessContext(
            user_id=owner.pk,
            resource_type="leave_request",
            resource_id=leave_request.pk,
        )
        decision = gate.check({"employee"}, set(), "read:leave_request:all", context)
        assert decision.rule == RULE_DENIED

    def test_department_scope(self, gate):
        owner = make_user("owner", department="Engineering")
        colleague = make_user("colleague", department="Engineering")
        leave_request = make_leave_request(owner)
        context = AccessContext(
            user_id=colleague.pk,
            department="Engineering",
            resource_type="leave_request",
            resource_id=leave_request.pk,
            allow_owner=True,
            allow_department_scope=True,
        )
        decision = gate.check({"employee"}, set(), "read:leave_request:all", context)
        assert decision.rule == RULE_DEPARTMENT

    def test_other_department_denied(self, gate):
        owner = make_user("owner", department="Engineering")
        outsider = make_user("outsider", department="Sales")
        leave_request = make_leave_request(owner)
        context = AccessContext(
            user_id=outsider.pk,
            department="Sales",
            resource_type="leave_request",
            resource_id=leave_request.pk,
            allow_owner=True,
            allow_department_scope=True,
        )
        decision = gate.check({"employee"}, set(), "read:leave_request:all", context)
        assert decision.rule == RULE_DENIED

    def test_missing_resource_denied(self, gate):
        user = make_user("someone")
        context = AccessContext(
            user_id=user.pk,
            resource_type="leave_request",
            resource_id=424242,
            allow_owner=True,
        )
        assert not gate.check({"employee"}, set(), "read:leave_request:all", context)


@pytest.mark.django_db
class TestAuditAndAuthorize:
    def test_every_decision_is_audited(self):
        user = make_user("audited")
        gate = AuthorizationGate(catalog=RbacCatalog.from_settings({}))

        context = AccessContext(user_id=user.pk)
        gate.check({"employee"}, set(), "create:leave_request", context)
        gate.check({"employee"}, set(), "manage:role", context)

        rows = list(
            AuditLog.objects.filter(action="permission_check").order_by("id")
        )
        assert [row.details["allowed"] for row in rows] == [True, False]
        assert rows[1].details == {
            "permission": "manage:role",
            "allowed": False,
            "rule": RULE_DENIED,
        }
        assert rows[0].actor_id == user.pk

    def test_failing_sink_does_not_change_decision(self):
        def broken_sink(**kwargs):
            msg = "audit store unavailable"
            raise RuntimeError(msg)

        gate = AuthorizationGate(
            catalog=RbacCatalog.from_settings({}), audit_sink=broken_sink
        )
        with mock.patch("hr_leave.rbac.gate.logger") as logger:
            decision = gate.check({"manager"}, set(), "read:user")

        assert decision.allowed
        logger.warning.assert_called_once()

    def test_authorize_raises_with_permission(self):
        user = make_user("plain")
        gate = AuthorizationGate(
            catalog=RbacCatalog.from_settings({}), audit_sink=None
        )
        auth = load_auth_data(user.pk)

        with pytest.raises(PermissionDeniedError) as excinfo:
            gate.authorize(auth, "update:leave_balance")

        assert excinfo.value.permission == "update:leave_balance"
        assert str(excinfo.value) == "Permission denied: update:leave_balance"

    def test_helpers(self):
        user = make_user("boss", role="super_admin")
        gate = AuthorizationGate(
            catalog=RbacCatalog.from_settings({}), audit_sink=None
        )
        auth = load_auth_data(user.pk)
        assert gate.is_system_administrator(auth)
        assert gate.has_role(auth, ["employee"])
        assert not gate.has_role(auth, ["contractor"])
