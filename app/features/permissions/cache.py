"""
Decision cache.

Cache-aside memoization of Allow/Deny outcomes over a KeyValueCache.
Key shape::

    {namespace}:perm:{employee_id}:{permission}[:{department_id}][:{target_employee_id}]

A check with a target employee but no department keeps an empty department
segment (``...:{permission}::{target}``) so the two scopes can never be
confused. Permission names are percent-encoded, which keeps a name that
contains ``:`` from colliding with a scoped key.

Every backend failure is absorbed here: a broken cache reads as a miss and
a failed write is dropped. Decisions never depend on the cache being up.

Invalidation also rotates an epoch token, ``{namespace}:epoch`` for the
whole namespace and ``{namespace}:epoch:{employee_id}`` per employee. A
resolver reads the tokens before it touches the database and writes its
decision through set_if_current(), so a verdict computed from rows that an
invalidation has since superseded is never left behind in the cache.
"""
import threading
from typing import Any, Iterable, Optional
from urllib.parse import quote

import ulid

from app.core import config
from app.core.cache import KeyValueCache
from app.core.errors import CacheUnavailable
from app.features.permissions.types import Decision
from app.utils import get_logger


log = get_logger(__name__)


class CacheMetrics:
    """
    Counters for one ResultCache, safe to share between threads.

    Owned by whoever builds the cache and passed in by reference.
    """

    FIELDS = ("hits", "misses", "malformed", "errors", "writes", "stale_writes", "invalidated_keys")

    def __init__(self):
        self._lock = threading.Lock()
        self._counts = dict.fromkeys(self.FIELDS, 0)

    def incr(self, field: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[field] += amount

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts = dict.fromkeys(self.FIELDS, 0)


def make_cache_key(
    namespace: str,
    employee_id: int,
    permission_name: str,
    department_id: Optional[int] = None,
    target_employee_id: Optional[int] = None,
) -> str:
    key = f"{namespace}:perm:{employee_id}:{quote(permission_name, safe='')}"
    if department_id is not None:
        key += f":{department_id}"
    if target_employee_id is not None:
        if department_id is None:
            key += ":"
        key += f":{target_employee_id}"
    return key


class ResultCache:
    """TTL memoization of decisions with per-employee and namespace-wide invalidation."""

    def __init__(
        self,
        backend: Optional[KeyValueCache],
        namespace: str = config.CACHE_NAMESPACE,
        ttl: int = config.CACHE_TTL_SECONDS,
        metrics: Optional[CacheMetrics] = None,
    ):
        self._backend = backend
        self.namespace = namespace
        self.ttl = ttl
        self.metrics = metrics if metrics is not None else CacheMetrics()

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def key(
        self,
        employee_id: int,
        permission_name: str,
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> str:
        return make_cache_key(self.namespace, employee_id, permission_name, department_id, target_employee_id)

    def employee_pattern(self, employee_id: int) -> str:
        return f"{self.namespace}:perm:{employee_id}:*"

    def namespace_pattern(self) -> str:
        return f"{self.namespace}:perm:*"

    def namespace_epoch_key(self) -> str:
        return f"{self.namespace}:epoch"

    def employee_epoch_key(self, employee_id: int) -> str:
        return f"{self.namespace}:epoch:{employee_id}"

    async def generation(self, employee_id: int) -> Optional[tuple]:
        """
        Snapshot the epoch tokens that guard one employee's decisions.

        Returns None when there is no backend or it cannot be read; a None
        generation never matches, so nothing gets written under it.
        """
        if self._backend is None:
            return None
        try:
            return (
                await self._backend.get(self.namespace_epoch_key()),
                await self._backend.get(self.employee_epoch_key(employee_id)),
            )
        except CacheUnavailable as exc:
            self.metrics.incr("errors")
            log.warning("Cache epoch read failed for employee %s: %s", employee_id, exc)
            return None

    async def _bump(self, key: str) -> None:
        try:
            await self._backend.set(key, str(ulid.new()), self.ttl)
        except CacheUnavailable as exc:
            self.metrics.incr("errors")
            log.warning("Cache epoch bump failed for %s: %s", key, exc)

    async def get(
        self,
        employee_id: int,
        permission_name: str,
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> Optional[Decision]:
        """Return the cached decision, or None on miss, malformed value or backend failure."""
        if self._backend is None:
            return None
        key = self.key(employee_id, permission_name, department_id, target_employee_id)
        try:
            raw = await self._backend.get(key)
        except CacheUnavailable as exc:
            self.metrics.incr("errors")
            log.warning("Cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            self.metrics.incr("misses")
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            decision = Decision(raw)
        except ValueError:
            self.metrics.incr("malformed")
            log.warning("Ignoring malformed cache value %r at %s", raw, key)
            return None
        self.metrics.incr("hits")
        return decision

    async def set(
        self,
        employee_id: int,
        permission_name: str,
        decision: Decision,
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> None:
        if self._backend is None:
            return
        key = self.key(employee_id, permission_name, department_id, target_employee_id)
        try:
            await self._backend.set(key, decision.value, self.ttl)
        except CacheUnavailable as exc:
            self.metrics.incr("errors")
            log.warning("Cache write failed for %s: %s", key, exc)
            return
        self.metrics.incr("writes")

    async def set_if_current(
        self,
        employee_id: int,
        permission_name: str,
        decision: Decision,
        generation: Optional[tuple],
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> bool:
        """
        Cache a decision only if no invalidation happened since ``generation`` was read.

        The epoch is checked again after the write; an invalidation that
        landed in between removes the entry it would otherwise have missed.
        Returns True when the decision is left in the cache.
        """
        if self._backend is None or generation is None:
            return False
        if await self.generation(employee_id) != generation:
            self.metrics.incr("stale_writes")
            log.debug("Skipping stale cache write for employee %s %s", employee_id, permission_name)
            return False

        await self.set(employee_id, permission_name, decision, department_id, target_employee_id)

        if await self.generation(employee_id) == generation:
            return True
        key = self.key(employee_id, permission_name, department_id, target_employee_id)
        try:
            await self._backend.delete(key)
        except CacheUnavailable as exc:
            self.metrics.incr("errors")
            log.warning("Could not drop stale cache entry %s: %s", key, exc)
        self.metrics.incr("stale_writes")
        log.debug("Dropped cache write for %s raced by an invalidation", key)
        return False

    async def _delete_matching(self, pattern: str) -> int:
        if self._backend is None:
            return 0
        try:
            keys = await self._backend.list_keys_by_prefix(pattern)
            deleted = await self._backend.delete(*keys) if keys else 0
        except CacheUnavailable as exc:
            self.metrics.incr("errors")
            log.warning("Cache invalidation failed for %s: %s", pattern, exc)
            return 0
        self.metrics.incr("invalidated_keys", deleted)
        log.debug("Invalidated %d cache keys matching %s", deleted, pattern)
        return deleted

    async def invalidate_employee(self, employee_id: int) -> int:
        """Drop every decision cached for one employee (after an assignment change)."""
        if self._backend is None:
            return 0
        await self._bump(self.employee_epoch_key(employee_id))
        return await self._delete_matching(self.employee_pattern(employee_id))

    async def invalidate_employees(self, employee_ids: Iterable[int]) -> int:
        deleted = 0
        for employee_id in dict.fromkeys(employee_ids):
            deleted += await self.invalidate_employee(employee_id)
        return deleted

    async def invalidate_all(self) -> int:
        """Drop every cached decision (after a role, permission, grant or department change)."""
        if self._backend is None:
            return 0
        await self._bump(self.namespace_epoch_key())
        return await self._delete_matching(self.namespace_pattern())

    async def clear_all(self) -> int:
        """Drop every key this service owns, decisions or otherwise."""
        if self._backend is None:
            return 0
        deleted = await self._delete_matching(f"{self.namespace}:*")
        # Epochs went with everything else; a fresh one fences in-flight writes
        await self._bump(self.namespace_epoch_key())
        return deleted

    async def stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "namespace": self.namespace,
            "enabled": self.enabled,
            "ttl_seconds": self.ttl,
            "metrics": self.metrics.snapshot(),
        }
        if self._backend is not None:
            try:
                stats["cached_decisions"] = len(await self._backend.list_keys_by_prefix(self.namespace_pattern()))
            except CacheUnavailable as exc:
                log.warning("Could not count cache keys: %s", exc)
                stats["cached_decisions"] = None
        return stats
