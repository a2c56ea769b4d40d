"""Per-user authorization data cache.

``PermissionResolver`` receives an ``AuthDataCache``; the in-process and the
Django cache framework backends expose the same contract, and both can run
on an injected clock for deterministic tests.
"""

from __future__ import annotations

import abc
import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from django.core.cache import caches
from django.core.signals import setting_changed
from django.dispatch import receiver

if TYPE_CHECKING:
    from hr_leave.rbac.resolver import AuthData

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class AuthDataCache(abc.ABC):
    @abc.abstractmethod
    def get(self, user_id: int) -> AuthData | None:
        """Return the cached entry, or None when absent or expired."""

    @abc.abstractmethod
    def set(self, user_id: int, data: AuthData) -> None: ...

    @abc.abstractmethod
    def invalidate(self, user_id: int) -> None: ...

    @abc.abstractmethod
    def expire(self) -> int:
        """Evict expired entries and return how many were removed."""

    @abc.abstractmethod
    def clear(self) -> None: ...


class LocalAuthDataCache(AuthDataCache):
    """Process-wide in-memory cache keyed by user id.

    Expiry is checked on every read; ``expire()`` sweeps the whole map and
    ``start_eviction()`` runs that sweep on a daemon timer. Writes for the
    same key are last-write-wins.
    """

    def __init__(self, ttl: float = 600.0, clock: Clock = time.monotonic):
        self.ttl = float(ttl)
        self.clock = clock
        self._entries: dict[int, tuple[float, AuthData]] = {}
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def get(self, user_id: int) -> AuthData | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            stored_at, data = entry
            if self.clock() - stored_at >= self.ttl:
                del self._entries[user_id]
                return None
            return data

    def set(self, user_id: int, data: AuthData) -> None:
        with self._lock:
            self._entries[user_id] = (self.clock(), data)

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def expire(self) -> int:
        now = self.clock()
        with self._lock:
            stale = [
                uid
                for uid, (stored_at, _data) in self._entries.items()
                if now - stored_at >= self.ttl
            ]
            for uid in stale:
                del self._entries[uid]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def start_eviction(self, interval: float) -> None:
        """Sweep expired entries every ``interval`` seconds on a daemon thread."""

        self.stop_eviction()

        def tick():
            removed = self.expire()
            if removed:
                logger.debug("Evicted %s expired auth cache entries", removed)
            self.start_eviction(interval)

        self._timer = threading.Timer(interval, tick)
        self._timer.daemon = True
        self._timer.start()

    def stop_eviction(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class DjangoAuthDataCache(AuthDataCache):
    """Cache stored through Django's cache framework (Redis in production).

    The backend enforces the TTL itself. ``clear()`` bumps a generation
    counter that is part of every key, which orphans all earlier entries.
    """

    key_prefix = "rbac:auth"

    def __init__(self, ttl: float = 600.0, alias: str = "default"):
        self.ttl = float(ttl)
        self.alias = alias

    @property
    def backend(self):
        return caches[self.alias]

    def _generation(self) -> int:
        return int(self.backend.get(f"{self.key_prefix}:generation", 0))

    def _key(self, user_id: int) -> str:
        return f"{self.key_prefix}:{self._generation()}:{user_id}"

    def get(self, user_id: int) -> AuthData | None:
        return self.backend.get(self._key(user_id))

    def set(self, user_id: int, data: AuthData) -> None:
        self.backend.set(self._key(user_id), data, timeout=self.ttl)

    def invalidate(self, user_id: int) -> None:
        self.backend.delete(self._key(user_id))

    def expire(self) -> int:
        return 0

    def clear(self) -> None:
        key = f"{self.key_prefix}:generation"
        self.backend.set(key, self._generation() + 1, timeout=None)


_cache: AuthDataCache | None = None


def build_auth_cache(catalog=None) -> AuthDataCache:
    from hr_leave.rbac.catalog import get_catalog  # noqa: PLC0415

    catalog = catalog or get_catalog()
    if catalog.cache_backend == "django":
        return DjangoAuthDataCache(ttl=catalog.cache_ttl, alias=catalog.cache_alias)
    cache = LocalAuthDataCache(ttl=catalog.cache_ttl)
    if catalog.cache_eviction_interval:
        cache.start_eviction(catalog.cache_eviction_interval)
    return cache


def get_auth_cache() -> AuthDataCache:
    global _cache  # noqa: PLW0603
    if _cache is None:
        _cache = build_auth_cache()
    return _cache


def reset_auth_cache() -> None:
    global _cache  # noqa: PLW0603
    if isinstance(_cache, LocalAuthDataCache):
        _cache.stop_eviction()
    _cache = None


@receiver(setting_changed)
def _reset_on_settings_change(*, setting, **kwargs):
    if setting == "RBAC":
        reset_auth_cache()
