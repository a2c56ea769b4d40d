"""Allow/deny decisions for a required permission string.

Rules are evaluated in order and the first match wins:

1. ``bypass_role``: the context lists a bypass role the user holds.
2. ``admin_tier``: an administrator-tier role or the global wildcard.
3. ``exact``: the permission name is granted verbatim.
4. ``pattern``: a pattern of one of the user's effective roles matches.
5. ``resource_owner``: the resource's owner field equals the acting user.
6. ``department_scope``: the resource's department equals the user's.
7. ``denied``.

Every decision is written to the audit log. A failing audit write is logged
and never changes the decision.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction

from hr_leave.rbac.catalog import RbacCatalog
from hr_leave.rbac.catalog import get_catalog
from hr_leave.rbac.exceptions import PermissionDeniedError

if TYPE_CHECKING:
    from hr_leave.rbac.resolver import AuthData

logger = logging.getLogger(__name__)

RULE_BYPASS = "bypass_role"
RULE_ADMIN_TIER = "admin_tier"
RULE_EXACT = "exact"
RULE_PATTERN = "pattern"
RULE_OWNER = "resource_owner"
RULE_DEPARTMENT = "department_scope"
RULE_DENIED = "denied"


@dataclass(frozen=True)
class AccessContext:
    user_id: int | None = None
    department: str = ""
    resource_type: str | None = None
    resource_id: int | str | None = None
    allow_owner: bool = False
    allow_department_scope: bool = False
    bypass_for_roles: tuple[str, ...] = ()

    @classmethod
    def for_auth(cls, auth: AuthData, **options) -> AccessContext:
        return cls(user_id=auth.user_id, department=auth.department, **options)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    rule: str
    permission: str

    def __bool__(self) -> bool:
        return self.allowed


AuditSink = Callable[..., object]


def _default_audit_sink(**kwargs) -> None:
    from hr_leave.audit.utils import log_permission_check  # noqa: PLC0415

    log_permission_check(**kwargs)


class AuthorizationGate:
    def __init__(
        self,
        *,
        catalog: RbacCatalog | None = None,
        audit_sink: AuditSink | None = _default_audit_sink,
    ):
        self._catalog = catalog
        self.audit_sink = audit_sink

    @property
    def catalog(self) -> RbacCatalog:
        return self._catalog if self._catalog is not None else get_catalog()

    def check(
        self,
        effective_role_names: Iterable[str],
        effective_permission_names: Iterable[str],
        required_permission: str,
        context: AccessContext | None = None,
    ) -> Decision:
        context = context or AccessContext()
        rule = self._evaluate(
            frozenset(effective_role_names),
            frozenset(effective_permission_names),
            required_permission,
            context,
        )
        decision = Decision(
            allowed=rule != RULE_DENIED, rule=rule, permission=required_permission
        )
        self.record(decision, context)
        return decision

    def authorize(
        self,
        auth: AuthData,
        required_permission: str,
        context: AccessContext | None = None,
    ) -> Decision:
        """Like ``check`` but raise ``PermissionDeniedError`` on deny."""

        context = context or AccessContext.for_auth(auth)
        decision = self.check(
            auth.effective_role_names,
            auth.effective_permission_names,
            required_permission,
            context,
        )
        if not decision.allowed:
            raise PermissionDeniedError(
                required_permission, rule=decision.rule, user_id=context.user_id
            )
        return decision

    def has_role(self, auth: AuthData, roles: Iterable[str]) -> bool:
        return not frozenset(roles).isdisjoint(auth.effective_role_names)

    def is_system_administrator(self, auth: AuthData) -> bool:
        return self.catalog.is_admin_tier(auth.effective_role_names)

    # Evaluation ------------------------------------------------------------
    def _evaluate(self, roles, permissions, required_permission, context) -> str:
        catalog = self.catalog
        if context.bypass_for_roles and not roles.isdisjoint(context.bypass_for_roles):
            return RULE_BYPASS
        if catalog.is_admin_tier(roles) or catalog.wildcard in permissions:
            return RULE_ADMIN_TIER
        if required_permission in permissions:
            return RULE_EXACT

        required = catalog.parse(required_permission)
        if required.resource not in catalog.protected_resources:
            for role in sorted(roles):
                if any(p.matches(required) for p in catalog.patterns_for(role)):
                    return RULE_PATTERN

        resource_type = context.resource_type or required.resource
        rule = catalog.resource_rule(resource_type)
        if rule is None or context.resource_id is None:
            return RULE_DENIED
        if context.allow_owner and rule.owner_field and context.user_id is not None:
            owner = self._resource_value(rule, rule.owner_field, context.resource_id)
            if owner is not None and owner == context.user_id:
                return RULE_OWNER
        if context.allow_department_scope and rule.department_field and context.department:
            department = self._resource_value(
                rule, rule.department_field, context.resource_id
            )
            if department and department == context.department:
                return RULE_DEPARTMENT
        return RULE_DENIED

    @staticmethod
    def _resource_value(rule, field_path: str, resource_id):
        model = rule.get_model()
        try:
            return (
                model._default_manager.filter(pk=resource_id)  # noqa: SLF001
                .values_list(field_path, flat=True)
                .first()
            )
        except (TypeError, ValueError):
            return None

    def record(self, decision: Decision, context: AccessContext) -> None:
        """Write ``decision`` to the audit sink; sink failures are only logged."""

        if self.audit_sink is None:
            return
        try:
            with transaction.atomic():
                self.audit_sink(
                    user_id=context.user_id,
                    permission=decision.permission,
                    allowed=decision.allowed,
                    rule=decision.rule,
                    resource_type=context.resource_type,
                    resource_id=context.resource_id,
                )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Audit sink failed for %s (%s): %s",
                decision.permission,
                decision.rule,
                exc,
            )


_gate: AuthorizationGate | None = None


def get_gate() -> AuthorizationGate:
    global _gate  # noqa: PLW0603
    if _gate is None:
        _gate = AuthorizationGate()
    return _gate
