"""
Bounded, TTL-expiring permission cache.

Keys are ``memberId:applicationId`` (check results append
``:resourceKey:actionKey``). Each entry also records the member and
application it was computed for, and invalidation matches on those fields,
so ids that themselves contain ``:`` are still dropped. Entries expire
``ttl_seconds`` after insertion; when full, the oldest inserted entry is
evicted first. One lock guards every read and write of the map, so callers on
different threads never see a partial entry and the size never exceeds
``max_entries``. Nothing slow runs while the lock is held.
"""
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Iterable, NamedTuple, Optional

from tenant_rbac.core import config
from tenant_rbac.utils import get_logger


log = get_logger(__name__)


class _Entry(NamedTuple):
    value: Any
    stored_at: float
    member_id: str
    application_id: Optional[str]


class PermissionCache:
    """
    Insertion-ordered cache with a TTL and a capacity bound.
    
    Usage:
        cache = PermissionCache(ttl_seconds=60, max_entries=500)
        key = PermissionCache.key(member_id, application_id)
        cached = cache.get(key)
        if cached is None:
            cached = await compute()
            cache.set(key, cached, member_id=member_id, application_id=application_id)
    """

    def __init__(
        self,
        ttl_seconds: float = config.PERMISSION_CACHE_TTL_SECONDS,
        max_entries: int = config.PERMISSION_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(*parts: str) -> str:
        return ":".join(parts)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss. Expired entries are dropped."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now - entry.stored_at < self.ttl_seconds:
                return entry.value
            self._entries.pop(key, None)
        return None

    def set(
        self,
        key: str,
        value: Any,
        member_id: Optional[str] = None,
        application_id: Optional[str] = None,
    ) -> None:
        """
        Store ``value`` under ``key``.
        
        ``member_id`` and ``application_id`` default to the first two
        ``:``-separated parts of the key; pass them explicitly when an id may
        contain ``:``.
        """
        if member_id is None:
            parts = key.split(":")
            member_id = parts[0]
            if application_id is None and len(parts) > 1:
                application_id = parts[1]
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.debug(f"Permission cache full, evicted {evicted}")
            self._entries[key] = _Entry(value, now, member_id, application_id)

    def invalidate(self, member_id: Optional[str] = None, application_id: Optional[str] = None) -> int:
        """
        Drop every entry matching the given member and/or application.
        
        Returns:
            Number of entries removed
        """
        if member_id is None and application_id is None:
            return 0
        with self._lock:
            doomed = [
                key for key, entry in self._entries.items()
                if (member_id is None or entry.member_id == member_id)
                and (application_id is None or entry.application_id == application_id)
            ]
            for key in doomed:
                del self._entries[key]
        if doomed:
            log.debug(f"Invalidated {len(doomed)} cache entries (member={member_id}, app={application_id})")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


def invalidate_caches(
    caches: Iterable[PermissionCache],
    member_id: Optional[str] = None,
    application_id: Optional[str] = None,
) -> int:
    """Invalidate matching entries in every cache; returns the total removed."""
    return sum(cache.invalidate(member_id=member_id, application_id=application_id) for cache in caches)
