"""DRF permission classes backed by the authorization gate.

Classes are parameterized with ``build()``::

    permission_classes = [
        IsAuthenticated,
        HasPermission.build("read:leave_request:all"),
    ]
"""

from __future__ import annotations

from rest_framework.permissions import BasePermission

from hr_leave.rbac.gate import AccessContext
from hr_leave.rbac.gate import get_gate
from hr_leave.rbac.resolver import AuthData
from hr_leave.rbac.resolver import load_auth_data

_REQUEST_ATTR = "_rbac_auth_data"


def get_request_auth(request) -> AuthData | None:
    """Resolve (once per request) the auth data of the authenticated user."""

    user = getattr(request, "user", None)
    if not (user and getattr(user, "is_authenticated", False)):
        return None
    auth = getattr(request, _REQUEST_ATTR, None)
    if auth is None:
        auth = load_auth_data(user.pk)
        setattr(request, _REQUEST_ATTR, auth)
    return auth


class _GatePermission(BasePermission):
    @classmethod
    def build(cls, *args, **options) -> type[BasePermission]:
        raise NotImplementedError


class HasPermission(_GatePermission):
    """Require one permission string, with optional owner/department scoping.

    ``resource_type`` and ``resource_id_kwarg`` enable the ownership and
    department checks against ``view.kwargs``.
    """

    required_permission: str = ""
    resource_type: str | None = None
    resource_id_kwarg: str = "pk"
    allow_owner: bool = False
    allow_department_scope: bool = False
    bypass_for_roles: tuple[str, ...] = ()

    @classmethod
    def build(  # noqa: PLR0913
        cls,
        permission: str,
        *,
        resource_type: str | None = None,
        resource_id_kwarg: str = "pk",
        allow_owner: bool = False,
        allow_department_scope: bool = False,
        bypass_for_roles=(),
    ) -> type[HasPermission]:
        return type(
            f"HasPermission_{permission.replace(':', '_').replace('*', 'any')}",
            (cls,),
            {
                "required_permission": permission,
                "resource_type": resource_type,
                "resource_id_kwarg": resource_id_kwarg,
                "allow_owner": allow_owner,
                "allow_department_scope": allow_department_scope,
                "bypass_for_roles": tuple(bypass_for_roles),
            },
        )

    def has_permission(self, request, view) -> bool:
        auth = get_request_auth(request)
        if auth is None:
            return False
        resource_id = None
        if self.resource_type:
            resource_id = getattr(view, "kwargs", {}).get(self.resource_id_kwarg)
        context = AccessContext.for_auth(
            auth,
            resource_type=self.resource_type,
            resource_id=resource_id,
            allow_owner=self.allow_owner,
            allow_department_scope=self.allow_department_scope,
            bypass_for_roles=self.bypass_for_roles,
        )
        decision = get_gate().check(
            auth.effective_role_names,
            auth.effective_permission_names,
            self.required_permission,
            context,
        )
        if not decision.allowed:
            self.message = f"Permission denied: {self.required_permission}"
        return decision.allowed


class HasRole(_GatePermission):
    roles: tuple[str, ...] = ()

    @classmethod
    def build(cls, *roles: str) -> type[HasRole]:
        return type(f"HasRole_{'_'.join(roles)}", (cls,), {"roles": roles})

    def has_permission(self, request, view) -> bool:
        auth = get_request_auth(request)
        if auth is None:
            return False
        if get_gate().has_role(auth, self.roles):
            return True
        self.message = f"Requires one of the roles: {', '.join(self.roles)}"
        return False


class _PermissionSet(_GatePermission):
    permissions: tuple[str, ...] = ()
    require_all: bool = True

    @classmethod
    def build(cls, *permissions: str):
        return type(cls.__name__, (cls,), {"permissions": permissions})

    def has_permission(self, request, view) -> bool:
        auth = get_request_auth(request)
        if auth is None:
            return False
        gate = get_gate()
        context = AccessContext.for_auth(auth)
        results = (
            gate.check(
                auth.effective_role_names,
                auth.effective_permission_names,
                permission,
                context,
            ).allowed
            for permission in self.permissions
        )
        allowed = all(results) if self.require_all else any(results)
        if not allowed:
            joiner = " and " if self.require_all else " or "
            self.message = f"Permission denied: {joiner.join(self.permissions)}"
        return allowed


class HasAllPermissions(_PermissionSet):
    require_all = True


class HasAnyPermission(_PermissionSet):
    require_all = False


class IsSystemAdministrator(BasePermission):
    """Administrator tier only."""

    message = "System administrator access required."

    def has_permission(self, request, view) -> bool:
        auth = get_request_auth(request)
        return bool(auth and get_gate().is_system_administrator(auth))
