"""
AccessControl: the surface adapters call.

Owns the decision cache, its metrics, the audit sink, the resolver and the
bulk engine, and exposes the invalidation hooks the administrative services
call after committing a change.
"""
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core import config
from app.core.cache import KeyValueCache
from app.core.errors import InvalidInput, StoreUnavailable
from app.features.audit.sink import AuditSink
from app.features.permissions.bulk import BulkResolver
from app.features.permissions.cache import CacheMetrics, ResultCache
from app.features.permissions.grants import PermissionGrantStore
from app.features.permissions.models import Permission
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.types import CheckOutcome, Decision, PermissionCheck
from app.features.roles.assignments import AssignmentStore
from app.features.roles.hierarchy import RoleHierarchyStore
from app.utils import get_logger


log = get_logger(__name__)


class AccessControl:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_backend: Optional[KeyValueCache] = None,
        *,
        namespace: str = config.CACHE_NAMESPACE,
        cache_ttl: int = config.CACHE_TTL_SECONDS,
        max_workers: int = config.BULK_MAX_WORKERS,
        audit_enabled: bool = config.AUDIT_ENABLED,
        metrics: Optional[CacheMetrics] = None,
    ):
        self.session_factory = session_factory
        self.metrics = metrics if metrics is not None else CacheMetrics()
        self.cache = ResultCache(cache_backend, namespace=namespace, ttl=cache_ttl, metrics=self.metrics)
        self.audit = AuditSink(session_factory, enabled=audit_enabled)
        self.resolver = PermissionResolver(session_factory, self.cache, self.audit)
        self.bulk = BulkResolver(self.resolver, max_workers=max_workers)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check(
        self,
        employee_id: int,
        permission: str,
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> Decision:
        return await self.resolver.resolve(employee_id, permission, department_id, target_employee_id)

    async def check_many(self, checks: Sequence[PermissionCheck]) -> list[CheckOutcome]:
        return await self.bulk.resolve_many(checks)

    async def check_any(
        self,
        employee_id: int,
        permissions: Sequence[str],
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> Decision:
        """Allow if at least one of the permissions resolves to Allow."""
        if not permissions:
            raise InvalidInput("at least one permission is required")
        for permission in permissions:
            if await self.check(employee_id, permission, department_id, target_employee_id) is Decision.ALLOW:
                return Decision.ALLOW
        return Decision.DENY

    async def check_all(
        self,
        employee_id: int,
        permissions: Sequence[str],
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> Decision:
        """Allow only if every permission resolves to Allow."""
        if not permissions:
            raise InvalidInput("at least one permission is required")
        for permission in permissions:
            if await self.check(employee_id, permission, department_id, target_employee_id) is Decision.DENY:
                return Decision.DENY
        return Decision.ALLOW

    # ------------------------------------------------------------------
    # Hierarchy queries
    # ------------------------------------------------------------------

    async def subordinates(self, employee_id: int) -> list[int]:
        """
        Employees holding any role at or below one of the caller's roles.

        The caller appears in the result when they hold one of those roles,
        as the original roles are part of their own descendant sets.
        """
        if not employee_id or employee_id <= 0:
            raise InvalidInput("employee_id must be positive")
        try:
            async with self.session_factory() as db:
                assignments = AssignmentStore(db)
                hierarchy = RoleHierarchyStore(db)
                role_ids: dict[int, None] = {}
                for role_id in await assignments.role_ids_for(employee_id):
                    for node in await hierarchy.get_descendants(role_id):
                        role_ids[node.id] = None
                return await assignments.employees_with_roles(role_ids)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def role_members(self, role_id: int) -> list[int]:
        """Employees holding the role directly, ascending. Holders of child roles are not included."""
        if not role_id or role_id <= 0:
            raise InvalidInput("role_id must be positive")
        try:
            async with self.session_factory() as db:
                await RoleHierarchyStore(db).get_role(role_id)
                return await AssignmentStore(db).employees_with_roles([role_id])
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def effective_permissions(self, employee_ids: Sequence[int]) -> dict[int, list[str]]:
        """
        Permission names reachable through each employee's role chains.

        Scope is ignored: a department- or employee-scoped grant still lists
        its permission here. Use check() to decide a concrete request.
        """
        for employee_id in employee_ids:
            if not employee_id or employee_id <= 0:
                raise InvalidInput("employee ids must be positive")
        try:
            async with self.session_factory() as db:
                by_employee = await AssignmentStore(db).role_ids_for_many(list(dict.fromkeys(employee_ids)))
                hierarchy = RoleHierarchyStore(db)

                chains: dict[int, list[int]] = {}
                for role_ids in by_employee.values():
                    for role_id in role_ids:
                        if role_id not in chains:
                            chains[role_id] = [node.id for node in await hierarchy.get_ancestor_chain(role_id)]

                all_roles = {node_id for chain in chains.values() for node_id in chain}
                grants = await PermissionGrantStore(db).grants_for_roles(all_roles)
                permission_ids_by_role: dict[int, set[int]] = {}
                for grant in grants:
                    permission_ids_by_role.setdefault(grant.role_id, set()).add(grant.permission_id)

                permission_ids = {pid for pids in permission_ids_by_role.values() for pid in pids}
                names: dict[int, str] = {}
                if permission_ids:
                    result = await db.execute(
                        select(Permission.id, Permission.name).where(
                            Permission.id.in_(permission_ids), Permission.deleted_at.is_(None)
                        )
                    )
                    names = dict(result.all())
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc

        effective: dict[int, list[str]] = {}
        for employee_id, role_ids in by_employee.items():
            found: set[str] = set()
            for role_id in role_ids:
                for node_id in chains[role_id]:
                    for permission_id in permission_ids_by_role.get(node_id, ()):
                        if permission_id in names:
                            found.add(names[permission_id])
            effective[employee_id] = sorted(found)
        return effective

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    async def invalidate_employee(self, employee_id: int) -> int:
        return await self.cache.invalidate_employee(employee_id)

    async def invalidate_employees(self, employee_ids: Iterable[int]) -> int:
        return await self.cache.invalidate_employees(employee_ids)

    async def invalidate_all(self) -> int:
        return await self.cache.invalidate_all()

    async def clear_cache(self, actor_id: int = 0) -> int:
        deleted = await self.cache.clear_all()
        await self.audit.record(actor_id, "clear_cache", "cache", details={"deleted_keys": deleted})
        return deleted

    async def cache_stats(self) -> dict[str, Any]:
        return await self.cache.stats()

    @classmethod
    def from_config(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        cache_backend: Optional[KeyValueCache] = None,
    ) -> "AccessControl":
        log.info(
            "Access control: namespace=%s ttl=%ss workers=%s audit=%s cache=%s",
            config.CACHE_NAMESPACE,
            config.CACHE_TTL_SECONDS,
            config.BULK_MAX_WORKERS,
            config.AUDIT_ENABLED,
            "on" if cache_backend is not None else "off",
        )
        return cls(session_factory, cache_backend)
