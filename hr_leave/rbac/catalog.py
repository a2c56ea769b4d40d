"""Role hierarchy and permission-pattern catalog.

The catalog is built once from ``settings.RBAC`` merged over
``hr_leave.rbac.defaults.DEFAULT_RBAC`` and validated at start-up. Every
permission string is parsed into a ``PermissionName`` value so matching is
structural instead of repeated string splitting.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field

from django.apps import apps
from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

from hr_leave.rbac.defaults import DEFAULT_RBAC
from hr_leave.rbac.defaults import WILDCARD
from hr_leave.rbac.exceptions import ConfigurationError

CACHE_BACKENDS = ("local", "django")


@dataclass(frozen=True)
class PermissionName:
    """Parsed ``action:resource[:scope]`` permission string."""

    raw: str
    action: str
    resource: str = ""
    scope: str | None = None
    is_global: bool = False

    @classmethod
    def parse(cls, text: str, *, wildcard: str = WILDCARD) -> PermissionName:
        text = (text or "").strip()
        if not text:
            msg = "Permission name cannot be empty"
            raise ValueError(msg)
        if text == wildcard:
            return cls(raw=text, action=wildcard, resource=wildcard, is_global=True)
        action, _, rest = text.partition(":")
        resource, _, scope = rest.partition(":")
        return cls(raw=text, action=action, resource=resource, scope=scope or None)

    def matches(self, required: PermissionName, *, wildcard: str = WILDCARD) -> bool:
        """Return True when this pattern grants ``required``.

        ``*`` matches any action or resource. A pattern scope, when present,
        must equal the required scope; an unscoped pattern covers every scope.
        """

        if self.is_global:
            return True
        if self.action not in (wildcard, required.action):
            return False
        if self.resource not in (wildcard, required.resource):
            return False
        return self.scope is None or self.scope == required.scope

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class ResourceRule:
    """Where to find the owner and department of a resource type."""

    resource_type: str
    model_label: str
    owner_field: str | None = None
    department_field: str | None = None

    def get_model(self):
        return apps.get_model(self.model_label)


@dataclass(frozen=True)
class RbacCatalog:
    hierarchy: dict[str, tuple[str, ...]]
    patterns: dict[str, tuple[PermissionName, ...]]
    permissions: tuple[tuple[str, str, str], ...]
    admin_roles: frozenset[str]
    wildcard: str
    resource_rules: dict[str, ResourceRule]
    protected_resources: frozenset[str]
    cache_backend: str = "local"
    cache_alias: str = "default"
    cache_ttl: float = 600.0
    cache_eviction_interval: float | None = None
    lookup_timeout: float = 5.0
    _closure: dict[str, frozenset[str]] = field(default_factory=dict, repr=False)

    @classmethod
    def from_settings(cls, overrides: dict | None = None) -> RbacCatalog:
        """Merge ``overrides`` over the defaults and validate the result."""

        conf = copy.deepcopy(DEFAULT_RBAC)
        conf.update(overrides or {})
        wildcard = conf["WILDCARD"]

        hierarchy = {
            str(role): tuple(inherited or ())
            for role, inherited in (conf["ROLE_HIERARCHY"] or {}).items()
        }
        _validate_hierarchy(hierarchy)

        patterns: dict[str, tuple[PermissionName, ...]] = {}
        for role, raw_patterns in (conf["PERMISSION_PATTERNS"] or {}).items():
            try:
                patterns[role] = tuple(
                    PermissionName.parse(p, wildcard=wildcard) for p in raw_patterns
                )
            except ValueError as exc:
                msg = f"Invalid permission pattern for role {role!r}: {exc}"
                raise ConfigurationError(msg) from exc

        resource_rules: dict[str, ResourceRule] = {}
        for resource_type, rule in (conf["RESOURCE_RULES"] or {}).items():
            if "model" not in rule:
                msg = f"Resource rule {resource_type!r} needs a 'model' label"
                raise ConfigurationError(msg)
            resource_rules[resource_type] = ResourceRule(
                resource_type=resource_type,
                model_label=rule["model"],
                owner_field=rule.get("owner_field"),
                department_field=rule.get("department_field"),
            )

        if conf["CACHE_BACKEND"] not in CACHE_BACKENDS:
            msg = f"RBAC CACHE_BACKEND must be one of {CACHE_BACKENDS}"
            raise ConfigurationError(msg)
        if float(conf["CACHE_TTL"]) <= 0 or float(conf["LOOKUP_TIMEOUT"]) <= 0:
            msg = "RBAC CACHE_TTL and LOOKUP_TIMEOUT must be positive"
            raise ConfigurationError(msg)

        closure = {role: _closure_of(role, hierarchy) for role in hierarchy}
        interval = conf.get("CACHE_EVICTION_INTERVAL")
        return cls(
            hierarchy=hierarchy,
            patterns=patterns,
            permissions=tuple(tuple(p) for p in conf.get("PERMISSIONS") or ()),
            admin_roles=frozenset(conf["ADMIN_ROLES"] or ()),
            wildcard=wildcard,
            resource_rules=resource_rules,
            protected_resources=frozenset(conf.get("PROTECTED_RESOURCES") or ()),
            cache_backend=conf["CACHE_BACKEND"],
            cache_alias=conf.get("CACHE_ALIAS", "default"),
            cache_ttl=float(conf["CACHE_TTL"]),
            cache_eviction_interval=float(interval) if interval else None,
            lookup_timeout=float(conf["LOOKUP_TIMEOUT"]),
            _closure=closure,
        )

    def effective_roles(self, names: Iterable[str]) -> frozenset[str]:
        """Assigned roles plus everything they inherit, transitively."""

        result: set[str] = set()
        for name in names:
            if not name:
                continue
            result |= self._closure.get(name, frozenset({name}))
        return frozenset(result)

    def patterns_for(self, role: str) -> tuple[PermissionName, ...]:
        return self.patterns.get(role, ())

    def is_admin_tier(self, names: Iterable[str]) -> bool:
        return not self.admin_roles.isdisjoint(names)

    def resource_rule(self, resource_type: str | None) -> ResourceRule | None:
        if not resource_type:
            return None
        return self.resource_rules.get(resource_type)

    def parse(self, permission: str) -> PermissionName:
        return PermissionName.parse(permission, wildcard=self.wildcard)

    def role_names(self) -> list[str]:
        """Every role the catalog knows about, in a stable order."""

        return sorted(set(self.hierarchy) | set(self.patterns))


def _validate_hierarchy(hierarchy: dict[str, tuple[str, ...]]) -> None:
    for role, inherited in hierarchy.items():
        unknown = [name for name in inherited if name not in hierarchy]
        if unknown:
            msg = f"Role {role!r} inherits unknown role(s): {', '.join(unknown)}"
            raise ConfigurationError(msg)

    visiting: set[str] = set()
    done: set[str] = set()

    def visit(role: str, path: list[str]) -> None:
        if role in done:
            return
        if role in visiting:
            cycle = " -> ".join([*path[path.index(role) :], role])
            msg = f"Role hierarchy contains a cycle: {cycle}"
            raise ConfigurationError(msg)
        visiting.add(role)
        for child in hierarchy[role]:
            visit(child, [*path, role])
        visiting.discard(role)
        done.add(role)

    for role in sorted(hierarchy):
        visit(role, [])


def _closure_of(role: str, hierarchy: dict[str, tuple[str, ...]]) -> frozenset[str]:
    seen = {role}
    stack = list(hierarchy.get(role, ()))
    while stack:
        name = stack.pop()
        if name in seen:
            continue
        seen.add(name)
        stack.extend(hierarchy.get(name, ()))
    return frozenset(seen)


_catalog: RbacCatalog | None = None


def configure(overrides: dict | None = None) -> RbacCatalog:
    """Build, validate and install the process-wide catalog."""

    global _catalog  # noqa: PLW0603
    if overrides is None:
        overrides = getattr(settings, "RBAC", {})
    _catalog = RbacCatalog.from_settings(overrides)
    return _catalog


def get_catalog() -> RbacCatalog:
    if _catalog is None:
        return configure()
    return _catalog


@receiver(setting_changed)
def _reload_on_settings_change(*, setting, **kwargs):
    if setting == "RBAC":
        configure()
