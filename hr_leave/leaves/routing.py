"""Approver selection for leave requests.

Escalation ladder, tried top to bottom:

* level 1: the requester's department manager;
* level 2: an HR manager, else the earliest-joined active administrator;
* level 3: the organization owner, else the earliest-joined administrator.

Owners and the sole active administrator approve their own requests. A
level is only skipped when nobody fills it; candidates are always ordered
by ``date_joined`` then ``id`` so routing is deterministic.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q

from hr_leave.leaves.models import ApprovalWorkflowEntry
from hr_leave.org.models import Department
from hr_leave.rbac.catalog import RbacCatalog
from hr_leave.rbac.catalog import get_catalog
from hr_leave.rbac.defaults import ROLE_HR_MANAGER
from hr_leave.rbac.defaults import ROLE_MANAGER
from hr_leave.rbac.resolver import PermissionResolver
from hr_leave.rbac.resolver import get_resolver

if TYPE_CHECKING:
    from hr_leave.leaves.models import LeaveRequest
    from hr_leave.users.models import User

logger = logging.getLogger(__name__)

ApproverRole = ApprovalWorkflowEntry.ApproverRole

LEVEL_DEPARTMENT_MANAGER = 1
LEVEL_HR_MANAGER = 2
LEVEL_OWNER = 3
MAX_LEVEL = LEVEL_OWNER


@dataclass(frozen=True)
class RoutingDecision:
    auto_approve: bool = False
    approver: User | None = None
    approver_role: str = ""
    level: int = 0
    reason: str = ""

    @property
    def no_approver(self) -> bool:
        return not self.auto_approve and self.approver is None

    @classmethod
    def auto(cls, requester: User, reason: str) -> RoutingDecision:
        return cls(
            auto_approve=True,
            approver=requester,
            approver_role=ApproverRole.OWNER_AUTO_APPROVED,
            level=LEVEL_DEPARTMENT_MANAGER,
            reason=reason,
        )

    @classmethod
    def route(cls, approver: User, approver_role: str, level: int) -> RoutingDecision:
        return cls(approver=approver, approver_role=approver_role, level=level)

    @classmethod
    def none(cls, reason: str) -> RoutingDecision:
        return cls(reason=reason)


class ApprovalRouter:
    def __init__(
        self,
        *,
        catalog: RbacCatalog | None = None,
        resolver: PermissionResolver | None = None,
    ):
        self._catalog = catalog
        self._resolver = resolver

    @property
    def catalog(self) -> RbacCatalog:
        return self._catalog if self._catalog is not None else get_catalog()

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver if self._resolver is not None else get_resolver()

    # Public API ------------------------------------------------------------
    def select_approver(self, requester: User) -> RoutingDecision:
        auto_reason = self._auto_approval_reason(requester)
        if auto_reason:
            return RoutingDecision.auto(requester, auto_reason)

        exclude = {requester.pk}
        for level in range(LEVEL_DEPARTMENT_MANAGER, MAX_LEVEL + 1):
            decision = self._candidate_for_level(level, requester, exclude)
            if decision is not None:
                return decision

        department = requester.department or "(none)"
        return RoutingDecision.none(
            f"No approver found for department {department}: there is no "
            "department manager, HR manager, owner or active administrator. "
            "Ask an administrator to assign a department manager."
        )

    def next_approver(
        self, leave_request: LeaveRequest, current_level: int
    ) -> RoutingDecision | None:
        """Candidate for ``current_level + 1``, or None when the ladder ends here.

        The requester and anyone who already approved this request are
        never picked again.
        """

        requester = leave_request.user
        if current_level >= self.final_level_for(requester):
            return None
        exclude = {requester.pk}
        exclude.update(
            leave_request.workflow_entries.filter(
                status=ApprovalWorkflowEntry.Status.APPROVED
            ).values_list("approver_id", flat=True)
        )
        return self._candidate_for_level(current_level + 1, requester, exclude)

    def final_level_for(self, requester: User) -> int:
        """Highest approval level a request from ``requester`` must pass."""

        depth_map = getattr(settings, "LEAVE_ESCALATION_DEPTH", {}) or {}
        roles = self.resolver.load_auth_data(requester.pk).effective_role_names
        roles = roles | self.catalog.effective_roles([requester.role])
        depths = [int(depth_map[r]) for r in roles if r in depth_map]
        return min(max(depths, default=1), MAX_LEVEL)

    # Candidates ------------------------------------------------------------
    def _candidate_for_level(
        self, level: int, requester: User, exclude: set[int]
    ) -> RoutingDecision | None:
        if level == LEVEL_DEPARTMENT_MANAGER:
            manager = self._department_manager(requester, exclude)
            if manager is not None:
                return RoutingDecision.route(
                    manager, ApproverRole.DEPARTMENT_MANAGER, level
                )
            return None
        if level == LEVEL_HR_MANAGER:
            hr_manager = self._first(self._hr_managers(), exclude)
            if hr_manager is not None:
                return RoutingDecision.route(hr_manager, ApproverRole.HR_MANAGER, level)
        elif level == LEVEL_OWNER:
            owner = self._first(self._active_users().filter(is_owner=True), exclude)
            if owner is not None:
                return RoutingDecision.route(owner, ApproverRole.OWNER, level)
        else:
            return None
        admin = self._first(self._administrators(), exclude)
        if admin is not None:
            return RoutingDecision.route(admin, ApproverRole.ADMIN_FALLBACK, level)
        return None

    def _department_manager(self, requester: User, exclude: set[int]) -> User | None:
        if not requester.department:
            return None
        department = (
            Department.objects.select_related("manager")
            .filter(name=requester.department, is_active=True)
            .first()
        )
        designated = department.manager if department is not None else None
        if (
            designated is not None
            and designated.is_active
            and designated.pk not in exclude
        ):
            return designated
        same_department = self._users_with_role(ROLE_MANAGER).filter(
            department=requester.department
        )
        return self._first(same_department, exclude)

    def _hr_managers(self):
        hr_departments = getattr(settings, "LEAVE_HR_DEPARTMENTS", [])
        return self._active_users().filter(
            self._role_q([ROLE_HR_MANAGER])
            | Q(department__in=hr_departments, role=ROLE_MANAGER)
        )

    def _administrators(self):
        catalog = self.catalog
        admin_like = [
            role
            for role in catalog.role_names()
            if catalog.is_admin_tier(catalog.effective_roles([role]))
        ]
        admin_like = sorted(set(admin_like) | catalog.admin_roles)
        return self._active_users().filter(self._role_q(admin_like))

    def _auto_approval_reason(self, requester: User) -> str:
        if requester.is_owner:
            return "Automatically approved: requester is the organization owner."
        top_tier = self._administrators() | self._active_users().filter(is_owner=True)
        top_ids = set(top_tier.values_list("pk", flat=True))
        if top_ids == {requester.pk}:
            return (
                "Automatically approved: requester is the sole active "
                "administrator."
            )
        return ""

    # Query helpers ---------------------------------------------------------
    @staticmethod
    def _active_users():
        return get_user_model().objects.filter(is_active=True)

    @staticmethod
    def _role_q(roles: Iterable[str]) -> Q:
        roles = list(roles)
        return Q(role__in=roles) | Q(role_assignments__role__name__in=roles)

    def _users_with_role(self, role: str):
        return self._active_users().filter(self._role_q([role]))

    @staticmethod
    def _first(queryset, exclude: set[int]) -> User | None:
        return (
            queryset.exclude(pk__in=exclude)
            .distinct()
            .order_by("date_joined", "id")
            .first()
        )
