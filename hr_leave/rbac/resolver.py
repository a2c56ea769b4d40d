"""Load a user's effective roles and permissions.

Three lookups feed every result: the active user row, the assigned roles and
the permissions granted to those roles. Each runs under its own time limit
(``RBAC["LOOKUP_TIMEOUT"]`` seconds). Any failure, timeouts included, drops
to a minimal result derived from the user's legacy role, so callers always
get an ``AuthData`` back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING
from typing import Any

from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.core.signals import setting_changed
from django.db import DatabaseError
from django.db import OperationalError
from django.db import connection
from django.db import transaction
from django.dispatch import receiver

from hr_leave.rbac.cache import AuthDataCache
from hr_leave.rbac.cache import get_auth_cache
from hr_leave.rbac.catalog import RbacCatalog
from hr_leave.rbac.catalog import get_catalog
from hr_leave.rbac.exceptions import TransientLookupError
from hr_leave.rbac.models import Permission
from hr_leave.rbac.models import Role

if TYPE_CHECKING:
    from hr_leave.users.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthData:
    user: User | None
    roles: tuple[Role, ...] = ()
    permissions: tuple[Permission, ...] = ()
    effective_role_names: frozenset[str] = field(default_factory=frozenset)
    effective_permission_names: frozenset[str] = field(default_factory=frozenset)
    is_fallback: bool = False

    @property
    def user_id(self) -> int | None:
        return self.user.pk if self.user is not None else None

    @property
    def department(self) -> str:
        return getattr(self.user, "department", "") or ""

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]


class PermissionResolver:
    def __init__(
        self,
        *,
        cache: AuthDataCache | None = None,
        catalog: RbacCatalog | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache = cache
        self._catalog = catalog
        self._timeout = timeout
        self.clock = clock

    @property
    def cache(self) -> AuthDataCache:
        return self._cache if self._cache is not None else get_auth_cache()

    @property
    def catalog(self) -> RbacCatalog:
        return self._catalog if self._catalog is not None else get_catalog()

    @property
    def timeout(self) -> float:
        if self._timeout is not None:
            return self._timeout
        return self.catalog.lookup_timeout

    def load_auth_data(self, user_id: int, *, use_cache: bool = True) -> AuthData:
        if use_cache:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        try:
            data = self._load(user_id)
        except (TransientLookupError, ObjectDoesNotExist, DatabaseError) as exc:
            logger.warning(
                "Auth data lookup failed for user %s, using fallback: %s",
                user_id,
                exc,
            )
            return self._fallback(user_id)

        if use_cache:
            self.cache.set(user_id, data)
        return data

    def invalidate(self, user_id: int) -> None:
        self.cache.invalidate(user_id)

    def invalidate_all(self) -> None:
        self.cache.clear()

    # Lookups ---------------------------------------------------------------
    def _load(self, user_id: int) -> AuthData:
        user_model = get_user_model()
        user = self._bounded(
            "user", lambda: user_model.objects.get(pk=user_id, is_active=True)
        )
        roles = self._bounded(
            "roles",
            lambda: tuple(
                Role.objects.filter(user_assignments__user_id=user_id).order_by("name")
            ),
        )
        permissions: tuple[Permission, ...] = ()
        if roles:
            role_ids = [role.pk for role in roles]
            permissions = self._bounded(
                "permissions",
                lambda: tuple(
                    Permission.objects.filter(role_grants__role_id__in=role_ids)
                    .distinct()
                    .order_by("name")
                ),
            )
        return self._build(user, roles, permissions)

    def _build(self, user, roles, permissions) -> AuthData:
        catalog = self.catalog
        effective_roles = catalog.effective_roles(
            [role.name for role in roles] + [user.role]
        )
        if catalog.is_admin_tier(effective_roles):
            permission_names = frozenset({catalog.wildcard})
        else:
            permission_names = frozenset(p.name for p in permissions)
        return AuthData(
            user=user,
            roles=tuple(roles),
            permissions=tuple(permissions),
            effective_role_names=effective_roles,
            effective_permission_names=permission_names,
        )

    def _bounded(self, label: str, lookup: Callable[[], Any]) -> Any:
        """Run one lookup under the statement timeout and a wall-clock deadline."""

        timeout = self.timeout
        deadline = self.clock() + timeout
        with transaction.atomic():
            self._set_statement_timeout(timeout)
            try:
                result = lookup()
            except OperationalError as exc:
                msg = f"{label} lookup failed: {exc}"
                raise TransientLookupError(msg) from exc
            self._set_statement_timeout(None)
        if self.clock() > deadline:
            msg = f"{label} lookup exceeded {timeout}s"
            raise TransientLookupError(msg)
        return result

    @staticmethod
    def _set_statement_timeout(seconds: float | None) -> None:
        if connection.vendor != "postgresql":
            return
        with connection.cursor() as cursor:
            if seconds is None:
                cursor.execute("SET LOCAL statement_timeout TO DEFAULT")
            else:
                cursor.execute(f"SET LOCAL statement_timeout = {int(seconds * 1000)}")

    # Fallback --------------------------------------------------------------
    def _fallback(self, user_id: int) -> AuthData:
        """Minimal auth data from the legacy role only. Never raises."""

        try:
            user = (
                get_user_model().objects.filter(pk=user_id, is_active=True).first()
            )
        except DatabaseError:
            logger.exception("Fallback user lookup also failed for user %s", user_id)
            user = None

        if user is None:
            return AuthData(user=None, is_fallback=True)

        catalog = self.catalog
        legacy = [user.role] if user.role else []
        effective_roles = catalog.effective_roles(legacy)
        permission_names = (
            frozenset({catalog.wildcard})
            if catalog.is_admin_tier(legacy)
            else frozenset()
        )
        logger.warning(
            "Using fallback auth data for user %s (legacy role %r)", user_id, user.role
        )
        return AuthData(
            user=user,
            effective_role_names=effective_roles,
            effective_permission_names=permission_names,
            is_fallback=True,
        )


_resolver: PermissionResolver | None = None


def get_resolver() -> PermissionResolver:
    global _resolver  # noqa: PLW0603
    if _resolver is None:
        _resolver = PermissionResolver()
    return _resolver


def load_auth_data(user_id: int, *, use_cache: bool = True) -> AuthData:
    return get_resolver().load_auth_data(user_id, use_cache=use_cache)


def invalidate_user(user_id: int | None) -> None:
    """Invalidation hook for role, permission and profile changes."""

    if user_id is None:
        return
    get_resolver().invalidate(user_id)


def invalidate_all() -> None:
    get_resolver().invalidate_all()


@receiver(setting_changed)
def _reset_on_settings_change(*, setting, **kwargs):
    global _resolver  # noqa: PLW0603
    if setting == "RBAC":
        _resolver = None
