from __future__ import annotations

from typing import Any

import redis
from django.conf import settings
from django.db import DatabaseError
from django.db import connection
from django.http import JsonResponse

from hr_leave.rbac.cache import LocalAuthDataCache
from hr_leave.rbac.cache import get_auth_cache
from hr_leave.rbac.models import Role


def check_db() -> dict[str, Any]:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
        roles = Role.objects.count()
    except Exception as exc:  # noqa: BLE001
        return {"ok": False, "error": str(exc)}
    # An unseeded catalog still serves requests through the legacy-role fallback.
    return {"ok": True, "rbac_seeded": roles > 0}


def check_auth_cache() -> dict[str, Any]:
    cache = get_auth_cache()
    info: dict[str, Any] = {"ok": True, "backend": type(cache).__name__}
    if isinstance(cache, LocalAuthDataCache):
        info["entries"] = len(cache)
    return info


def check_redis() -> dict[str, Any]:
    location = settings.CACHES.get("default", {}).get("LOCATION") or getattr(
        settings,
        "REDIS_URL",
        None,
    )
    if not location:
        return {"ok": False, "error": "no redis location configured"}
    try:
        redis.Redis.from_url(
            location,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        ).ping()
    except (redis.RedisError, OSError) as exc:
        return {"ok": False, "error": str(exc)}
    return {"ok": True}


def health(request):
    components = {"db": check_db()}
    try:
        components["auth_cache"] = check_auth_cache()
    except DatabaseError as exc:
        components["auth_cache"] = {"ok": False, "error": str(exc)}
    if getattr(settings, "RBAC", {}).get("CACHE_BACKEND") == "django":
        components["redis"] = check_redis()

    healthy = [c.get("ok", False) for c in components.values()]
    if all(healthy):
        status = "ok"
    elif any(healthy):
        status = "degraded"
    else:
        status = "down"
    return JsonResponse(
        {"status": status, "components": components},
        status=200 if all(healthy) else 503,
    )
