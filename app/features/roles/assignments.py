"""
Employee-role assignment storage.

Assignments are soft-deleted on revoke and revived on re-assign, which makes
bulk assignment an idempotent create-if-absent.
"""
from datetime import datetime, timezone
from typing import Iterable, Mapping, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidInput, NotFound
from app.features.roles.models import EmployeeRoleAssignment, Role


def _require_positive(value: int, label: str) -> None:
    if not value or value <= 0:
        raise InvalidInput(f"{label} must be positive")


class AssignmentStore:
    """Assignment reads and writes for one database session. Writes are flushed, not committed."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def _require_roles(self, role_ids: Iterable[int]) -> None:
        wanted = set(role_ids)
        for role_id in wanted:
            _require_positive(role_id, "role_id")
        if not wanted:
            return
        result = await self._db.execute(
            select(Role.id).where(Role.id.in_(wanted), Role.deleted_at.is_(None))
        )
        missing = wanted - set(result.scalars().all())
        if missing:
            raise NotFound(f"roles not found: {sorted(missing)}")

    async def _find(self, employee_id: int, role_id: int) -> EmployeeRoleAssignment | None:
        """Return the row for the pair, live or revoked."""
        result = await self._db.execute(
            select(EmployeeRoleAssignment).where(
                EmployeeRoleAssignment.employee_id == employee_id,
                EmployeeRoleAssignment.role_id == role_id,
            )
        )
        return result.scalar_one_or_none()

    async def role_ids_for(self, employee_id: int) -> list[int]:
        """Live roles directly assigned to the employee."""
        result = await self._db.execute(
            select(EmployeeRoleAssignment.role_id)
            .join(Role, Role.id == EmployeeRoleAssignment.role_id)
            .where(
                EmployeeRoleAssignment.employee_id == employee_id,
                EmployeeRoleAssignment.deleted_at.is_(None),
                Role.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def role_ids_for_many(self, employee_ids: Sequence[int]) -> dict[int, list[int]]:
        """IN-list variant of role_ids_for, keyed by employee id."""
        grouped: dict[int, list[int]] = {employee_id: [] for employee_id in employee_ids}
        if not grouped:
            return grouped
        result = await self._db.execute(
            select(EmployeeRoleAssignment.employee_id, EmployeeRoleAssignment.role_id)
            .join(Role, Role.id == EmployeeRoleAssignment.role_id)
            .where(
                EmployeeRoleAssignment.employee_id.in_(list(grouped)),
                EmployeeRoleAssignment.deleted_at.is_(None),
                Role.deleted_at.is_(None),
            )
        )
        for employee_id, role_id in result.all():
            grouped[employee_id].append(role_id)
        return grouped

    async def employees_with_roles(self, role_ids: Iterable[int]) -> list[int]:
        """Distinct employees holding any of the given roles."""
        role_ids = list(role_ids)
        if not role_ids:
            return []
        result = await self._db.execute(
            select(EmployeeRoleAssignment.employee_id)
            .where(
                EmployeeRoleAssignment.role_id.in_(role_ids),
                EmployeeRoleAssignment.deleted_at.is_(None),
            )
            .distinct()
            .order_by(EmployeeRoleAssignment.employee_id)
        )
        return list(result.scalars().all())

    async def get(self, employee_id: int, role_id: int) -> EmployeeRoleAssignment:
        _require_positive(employee_id, "employee_id")
        _require_positive(role_id, "role_id")
        assignment = await self._find(employee_id, role_id)
        if assignment is None or assignment.is_deleted:
            raise NotFound(f"employee {employee_id} does not hold role {role_id}")
        return assignment

    async def list_for(self, employee_id: int) -> list[EmployeeRoleAssignment]:
        _require_positive(employee_id, "employee_id")
        result = await self._db.execute(
            select(EmployeeRoleAssignment)
            .where(
                EmployeeRoleAssignment.employee_id == employee_id,
                EmployeeRoleAssignment.deleted_at.is_(None),
            )
            .order_by(EmployeeRoleAssignment.role_id)
        )
        return list(result.scalars().all())

    async def _create_if_absent(self, employee_id: int, role_id: int) -> tuple[EmployeeRoleAssignment, bool]:
        assignment = await self._find(employee_id, role_id)
        if assignment is None:
            assignment = EmployeeRoleAssignment(employee_id=employee_id, role_id=role_id)
            self._db.add(assignment)
            return assignment, True
        if assignment.is_deleted:
            assignment.deleted_at = None
            return assignment, True
        return assignment, False

    async def assign(self, employee_id: int, role_id: int) -> EmployeeRoleAssignment:
        _require_positive(employee_id, "employee_id")
        await self._require_roles([role_id])
        assignment, created = await self._create_if_absent(employee_id, role_id)
        if not created:
            raise Conflict(f"employee {employee_id} already holds role {role_id}")
        await self._db.flush()
        return assignment

    async def reassign(self, employee_id: int, old_role_id: int, new_role_id: int) -> EmployeeRoleAssignment:
        current = await self.get(employee_id, old_role_id)
        await self._require_roles([new_role_id])
        if old_role_id == new_role_id:
            return current
        current.soft_delete()
        assignment, created = await self._create_if_absent(employee_id, new_role_id)
        if not created:
            raise Conflict(f"employee {employee_id} already holds role {new_role_id}")
        await self._db.flush()
        return assignment

    async def revoke(self, employee_id: int, role_id: int) -> EmployeeRoleAssignment:
        assignment = await self.get(employee_id, role_id)
        assignment.soft_delete()
        await self._db.flush()
        return assignment

    async def bulk_assign(self, assignments: Mapping[int, Sequence[int]]) -> int:
        """Create-if-absent every (employee, role) pair. Returns how many rows became live."""
        for employee_id in assignments:
            _require_positive(employee_id, "employee_id")
        await self._require_roles(role_id for role_ids in assignments.values() for role_id in role_ids)
        created_count = 0
        for employee_id, role_ids in assignments.items():
            for role_id in dict.fromkeys(role_ids):
                _, created = await self._create_if_absent(employee_id, role_id)
                created_count += int(created)
        await self._db.flush()
        return created_count

    async def bulk_revoke(self, removals: Mapping[int, Sequence[int]]) -> int:
        """Revoke every listed pair that is live. Returns how many rows were revoked."""
        now = datetime.now(timezone.utc)
        revoked = 0
        for employee_id, role_ids in removals.items():
            _require_positive(employee_id, "employee_id")
            if not role_ids:
                continue
            result = await self._db.execute(
                update(EmployeeRoleAssignment)
                .where(
                    EmployeeRoleAssignment.employee_id == employee_id,
                    EmployeeRoleAssignment.role_id.in_(list(role_ids)),
                    EmployeeRoleAssignment.deleted_at.is_(None),
                )
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
            revoked += result.rowcount or 0
        await self._db.flush()
        return revoked
