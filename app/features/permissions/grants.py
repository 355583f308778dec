"""
Scoped permission grant storage and the scope-matching rule.
"""
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidInput, NotFound
from app.features.departments.models import Department
from app.features.permissions.models import Permission, ScopedPermissionGrant
from app.features.roles.models import Role


def grant_matches(
    grant: ScopedPermissionGrant,
    permission_id: int,
    department_id: Optional[int] = None,
    target_employee_id: Optional[int] = None,
) -> bool:
    """
    Return True if the grant satisfies a check.

    A NULL scope column matches anything along that axis; a set column must
    equal the requested scope exactly, so a department-scoped grant never
    satisfies a check that names no department.
    """
    if grant.permission_id != permission_id:
        return False
    if grant.department_id is not None and grant.department_id != department_id:
        return False
    if grant.employee_id is not None and grant.employee_id != target_employee_id:
        return False
    return True


def _positive(value: Optional[int], label: str, required: bool = True) -> None:
    if value is None:
        if required:
            raise InvalidInput(f"{label} is required")
        return
    if value <= 0:
        raise InvalidInput(f"{label} must be positive")


class PermissionGrantStore:
    """CRUD over scoped grants for one database session. Writes are flushed, not committed."""

    def __init__(self, db: AsyncSession):
        self._db = db

    def _live_grants(self):
        # Grants scoped to a soft-deleted department are inert
        return (
            select(ScopedPermissionGrant)
            .outerjoin(Department, ScopedPermissionGrant.department_id == Department.id)
            .where(
                ScopedPermissionGrant.deleted_at.is_(None),
                or_(ScopedPermissionGrant.department_id.is_(None), Department.deleted_at.is_(None)),
            )
        )

    async def _exists(self, model, object_id: int) -> bool:
        result = await self._db.execute(
            select(model.id).where(model.id == object_id, model.deleted_at.is_(None))
        )
        return result.first() is not None

    async def _validate_references(
        self,
        role_id: int,
        permission_id: int,
        department_id: Optional[int],
        employee_id: Optional[int],
    ) -> None:
        _positive(role_id, "role_id")
        _positive(permission_id, "permission_id")
        _positive(department_id, "department_id", required=False)
        _positive(employee_id, "employee_id", required=False)
        
        if not await self._exists(Role, role_id):
            raise NotFound(f"role {role_id} not found")
        if not await self._exists(Permission, permission_id):
            raise NotFound(f"permission {permission_id} not found")
        if department_id is not None and not await self._exists(Department, department_id):
            raise NotFound(f"department {department_id} not found")

    async def create(
        self,
        role_id: int,
        permission_id: int,
        department_id: Optional[int] = None,
        employee_id: Optional[int] = None,
    ) -> ScopedPermissionGrant:
        await self._validate_references(role_id, permission_id, department_id, employee_id)
        grant = ScopedPermissionGrant(
            role_id=role_id,
            permission_id=permission_id,
            department_id=department_id,
            employee_id=employee_id,
        )
        self._db.add(grant)
        await self._db.flush()
        return grant

    async def get(self, grant_id: int) -> ScopedPermissionGrant:
        _positive(grant_id, "grant id")
        result = await self._db.execute(
            select(ScopedPermissionGrant).where(
                ScopedPermissionGrant.id == grant_id,
                ScopedPermissionGrant.deleted_at.is_(None),
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise NotFound(f"scoped permission {grant_id} not found")
        return grant

    async def update(
        self,
        grant_id: int,
        role_id: int,
        permission_id: int,
        department_id: Optional[int] = None,
        employee_id: Optional[int] = None,
    ) -> ScopedPermissionGrant:
        grant = await self.get(grant_id)
        await self._validate_references(role_id, permission_id, department_id, employee_id)
        grant.role_id = role_id
        grant.permission_id = permission_id
        grant.department_id = department_id
        grant.employee_id = employee_id
        await self._db.flush()
        return grant

    async def delete(self, grant_id: int) -> ScopedPermissionGrant:
        grant = await self.get(grant_id)
        grant.soft_delete()
        await self._db.flush()
        return grant

    async def list_grants(self, role_id: Optional[int] = None) -> list[ScopedPermissionGrant]:
        stmt = select(ScopedPermissionGrant).where(ScopedPermissionGrant.deleted_at.is_(None))
        if role_id is not None:
            stmt = stmt.where(ScopedPermissionGrant.role_id == role_id)
        result = await self._db.execute(stmt.order_by(ScopedPermissionGrant.id))
        return list(result.scalars().all())

    async def grants_for_role(self, role_id: int) -> list[ScopedPermissionGrant]:
        """All live grants, scoped and blanket, attached directly to role_id."""
        result = await self._db.execute(
            self._live_grants().where(ScopedPermissionGrant.role_id == role_id)
        )
        return list(result.scalars().all())

    async def grants_for_roles(
        self,
        role_ids: Iterable[int],
        permission_id: Optional[int] = None,
    ) -> list[ScopedPermissionGrant]:
        """Batched grants_for_role over an IN list, optionally narrowed to one permission."""
        role_ids = list(role_ids)
        if not role_ids:
            return []
        stmt = self._live_grants().where(ScopedPermissionGrant.role_id.in_(role_ids))
        if permission_id is not None:
            stmt = stmt.where(ScopedPermissionGrant.permission_id == permission_id)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())
