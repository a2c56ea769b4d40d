from __future__ import annotations

from django.core.exceptions import ImproperlyConfigured


class RbacError(Exception):
    """Base class for authorization errors."""


class ConfigurationError(ImproperlyConfigured):
    """The RBAC catalog is invalid (e.g. the role hierarchy has a cycle)."""


class TransientLookupError(RbacError):
    """A resolver lookup failed or exceeded its time limit.

    Always absorbed by the resolver fallback; never raised to callers.
    """


class PermissionDeniedError(RbacError):
    """The gate denied ``permission`` to the acting user."""

    def __init__(self, permission: str, *, rule: str = "denied", user_id=None):
        self.permission = permission
        self.rule = rule
        self.user_id = user_id
        super().__init__(f"Permission denied: {permission}")
