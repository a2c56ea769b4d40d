from __future__ import annotations

from django.contrib.auth import get_user_model

from .models import AuditLog

PERMISSION_CHECK_ACTION = "permission_check"


def log_action(  # noqa: PLR0913
    action: str,
    *,
    actor: object | None = None,
    actor_id: int | None = None,
    message: str = "",
    resource_type: str = "",
    resource_id: int | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    if isinstance(actor, get_user_model()):
        actor_id = actor.pk
    return AuditLog.objects.create(
        action=action,
        actor_id=actor_id,
        message=message,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or {},
        ip_address=ip_address or None,
    )


def _as_resource_id(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def log_permission_check(  # noqa: PLR0913
    *,
    user_id: int | None,
    permission: str,
    allowed: bool,
    rule: str,
    resource_type: str | None = None,
    resource_id=None,
) -> AuditLog:
    """Record one authorization decision (allow or deny) and the rule behind it.

    Non-numeric resource ids are kept in ``details`` since the column is numeric.
    """

    outcome = "allowed" if allowed else "denied"
    details = {"permission": permission, "allowed": allowed, "rule": rule}
    numeric_id = _as_resource_id(resource_id)
    if resource_id is not None and numeric_id is None:
        details["resource_key"] = str(resource_id)
    return log_action(
        PERMISSION_CHECK_ACTION,
        actor_id=user_id,
        message=f"{permission} {outcome} ({rule})",
        resource_type=resource_type or "",
        resource_id=numeric_id,
        details=details,
    )
