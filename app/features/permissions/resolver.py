"""
Single-check permission resolution.

resolve() answers "may employee E use permission P, in department D,
acting on employee T?":

1. validate input
2. return a cached verdict if there is one (a cached Deny counts)
3. look the permission up by name; an unknown permission is a Deny
4. load the employee's live role assignments
5. walk each assigned role up its ancestor chain and test the grants on
   every node, stopping at the first grant that matches
6. cache the outcome, Allow or Deny
7. write one audit entry
"""
from collections import defaultdict
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import InvalidInput, NotFound, StoreUnavailable
from app.features.audit.sink import AuditSink
from app.features.permissions.cache import ResultCache
from app.features.permissions.grants import PermissionGrantStore, grant_matches
from app.features.permissions.models import Permission, ScopedPermissionGrant
from app.features.permissions.types import Decision
from app.features.roles.assignments import AssignmentStore
from app.features.roles.hierarchy import RoleHierarchyStore
from app.utils import get_logger


log = get_logger(__name__)


def validate_check(
    employee_id: int,
    permission_name: str,
    department_id: Optional[int] = None,
    target_employee_id: Optional[int] = None,
) -> None:
    if not _is_positive_id(employee_id):
        raise InvalidInput("employee_id must be a positive integer")
    if not isinstance(permission_name, str) or not permission_name.strip():
        raise InvalidInput("permission name must be a non-empty string")
    if department_id is not None and not _is_positive_id(department_id):
        raise InvalidInput("department scope must be a positive integer")
    if target_employee_id is not None and not _is_positive_id(target_employee_id):
        raise InvalidInput("target employee scope must be a positive integer")


def _is_positive_id(value) -> bool:
    # bool is an int subclass; True must not pass as employee 1
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class PermissionResolver:
    """Decides one check. Opens its own session per call, so concurrent calls share nothing but the cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: ResultCache,
        audit: AuditSink,
    ):
        self._session_factory = session_factory
        self._cache = cache
        self._audit = audit

    async def resolve(
        self,
        employee_id: int,
        permission_name: str,
        department_id: Optional[int] = None,
        target_employee_id: Optional[int] = None,
    ) -> Decision:
        """
        Resolve a check to Allow or Deny.

        Raises:
            InvalidInput: ids that are not positive integers, or a permission name that is not a non-empty string
            StoreUnavailable: the database failed; nothing is cached
        """
        validate_check(employee_id, permission_name, department_id, target_employee_id)

        cached = await self._cache.get(employee_id, permission_name, department_id, target_employee_id)
        if cached is not None:
            log.debug(f"Cache hit: employee={employee_id} permission={permission_name} decision={cached.value}")
            await self._record(employee_id, permission_name, department_id, target_employee_id, cached, cached=True)
            return cached

        # Read before the store so a concurrent invalidation is noticed at write time
        generation = await self._cache.generation(employee_id)
        try:
            async with self._session_factory() as db:
                permission_id, grant = await self._evaluate(
                    db, employee_id, permission_name, department_id, target_employee_id
                )
        except SQLAlchemyError as exc:
            log.warning(f"Store failure resolving {permission_name} for employee {employee_id}: {exc}")
            raise StoreUnavailable(str(exc)) from exc

        decision = Decision.ALLOW if grant is not None else Decision.DENY
        if grant is not None:
            log.debug(
                f"Employee {employee_id} granted {permission_name} via grant {grant.id} on role {grant.role_id}"
            )
        else:
            log.debug(f"Employee {employee_id} denied {permission_name}")

        await self._cache.set_if_current(
            employee_id, permission_name, decision, generation, department_id, target_employee_id
        )
        await self._record(
            employee_id,
            permission_name,
            department_id,
            target_employee_id,
            decision,
            cached=False,
            permission_id=permission_id,
            grant=grant,
        )
        return decision

    async def _evaluate(
        self,
        db: AsyncSession,
        employee_id: int,
        permission_name: str,
        department_id: Optional[int],
        target_employee_id: Optional[int],
    ) -> tuple[Optional[int], Optional[ScopedPermissionGrant]]:
        """Return (permission id, matching grant); the grant is None for a Deny."""
        result = await db.execute(
            select(Permission.id).where(Permission.name == permission_name, Permission.deleted_at.is_(None))
        )
        permission_id = result.scalar_one_or_none()
        if permission_id is None:
            log.debug(f"Permission {permission_name!r} does not exist")
            return None, None

        role_ids = await AssignmentStore(db).role_ids_for(employee_id)
        if not role_ids:
            return permission_id, None

        hierarchy = RoleHierarchyStore(db)
        grants = PermissionGrantStore(db)
        evaluated: set[int] = set()

        for role_id in role_ids:
            try:
                chain = await hierarchy.get_ancestor_chain(role_id)
            except NotFound:
                # Deleted between reading assignments and walking
                continue

            # Ancestors shared with an earlier assignment were already tested
            pending = [node.id for node in chain if node.id not in evaluated]
            if not pending:
                continue
            evaluated.update(pending)

            by_role: dict[int, list[ScopedPermissionGrant]] = defaultdict(list)
            for grant in await grants.grants_for_roles(pending, permission_id=permission_id):
                by_role[grant.role_id].append(grant)

            for node_id in pending:
                for grant in by_role[node_id]:
                    if grant_matches(grant, permission_id, department_id, target_employee_id):
                        return permission_id, grant

        return permission_id, None

    async def _record(
        self,
        employee_id: int,
        permission_name: str,
        department_id: Optional[int],
        target_employee_id: Optional[int],
        decision: Decision,
        cached: bool,
        permission_id: Optional[int] = None,
        grant: Optional[ScopedPermissionGrant] = None,
    ) -> None:
        details = {
            "permission": permission_name,
            "department_id": department_id,
            "target_employee_id": target_employee_id,
            "decision": decision.value,
            "cached": cached,
        }
        if grant is not None:
            details["grant_id"] = grant.id
            details["role_id"] = grant.role_id
        await self._audit.record(
            actor_id=employee_id,
            action="check_permission",
            target_type="permission",
            target_id=permission_id,
            details=details,
        )
