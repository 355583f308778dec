"""
Permission and scoped grant administration.

Every write here invalidates the whole decision cache before it is audited.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidInput, NotFound
from app.features.permissions.engine import AccessControl
from app.features.permissions.grants import PermissionGrantStore
from app.features.permissions.models import Permission, ScopedPermissionGrant
from app.utils import get_logger


log = get_logger(__name__)


def _clean_name(name: str) -> str:
    if not name or not name.strip():
        raise InvalidInput("permission name must not be empty")
    return name.strip()


def _scope_details(department_id: Optional[int], employee_id: Optional[int], base: str) -> str:
    details = base
    if department_id is not None:
        details += " in department"
    if employee_id is not None:
        details += " for employee"
    return details


# ============================================================================
# Permissions
# ============================================================================

async def get_permission(db: AsyncSession, permission_id: int) -> Permission:
    if not permission_id or permission_id <= 0:
        raise InvalidInput("permission id must be positive")
    result = await db.execute(
        select(Permission).where(Permission.id == permission_id, Permission.deleted_at.is_(None))
    )
    permission = result.scalar_one_or_none()
    if permission is None:
        raise NotFound(f"permission {permission_id} not found")
    return permission


async def list_permissions(db: AsyncSession) -> list[Permission]:
    result = await db.execute(
        select(Permission).where(Permission.deleted_at.is_(None)).order_by(Permission.id)
    )
    return list(result.scalars().all())


async def create_permission(
    db: AsyncSession,
    access: AccessControl,
    name: str,
    is_global: bool = False,
    actor_id: int = 0,
) -> Permission:
    name = _clean_name(name)
    permission = Permission(name=name, is_global=is_global)
    db.add(permission)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"permission {name!r} already exists")
    await db.refresh(permission)
    
    # A cached Deny for this name predates it
    await access.invalidate_all()
    await access.audit.record(actor_id, "create_permission", "permission", permission.id, {"name": name})
    return permission


async def update_permission(
    db: AsyncSession,
    access: AccessControl,
    permission_id: int,
    name: str,
    is_global: bool = False,
    actor_id: int = 0,
) -> Permission:
    name = _clean_name(name)
    permission = await get_permission(db, permission_id)
    permission.name = name
    permission.is_global = is_global
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"permission {name!r} already exists")
    await db.refresh(permission)
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "update_permission", "permission", permission.id, {"name": name})
    return permission


async def delete_permission(db: AsyncSession, access: AccessControl, permission_id: int, actor_id: int = 0) -> None:
    permission = await get_permission(db, permission_id)
    permission.soft_delete()
    await db.commit()
    log.info(f"Permission {permission_id} ({permission.name!r}) deleted")
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "delete_permission", "permission", permission_id, {"name": permission.name})


# ============================================================================
# Scoped grants
# ============================================================================

async def get_scoped_permission(db: AsyncSession, grant_id: int) -> ScopedPermissionGrant:
    return await PermissionGrantStore(db).get(grant_id)


async def list_scoped_permissions(db: AsyncSession, role_id: Optional[int] = None) -> list[ScopedPermissionGrant]:
    return await PermissionGrantStore(db).list_grants(role_id)


async def add_scoped_permission(
    db: AsyncSession,
    access: AccessControl,
    role_id: int,
    permission_id: int,
    department_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    actor_id: int = 0,
) -> ScopedPermissionGrant:
    grant = await PermissionGrantStore(db).create(role_id, permission_id, department_id, employee_id)
    await db.commit()
    await db.refresh(grant)
    
    await access.invalidate_all()
    await access.audit.record(
        actor_id,
        "add_scoped_permission",
        "scoped_permission",
        grant.id,
        {
            "message": _scope_details(department_id, employee_id, "Granted permission to role"),
            "role_id": role_id,
            "permission_id": permission_id,
            "department_id": department_id,
            "employee_id": employee_id,
        },
    )
    return grant


async def update_scoped_permission(
    db: AsyncSession,
    access: AccessControl,
    grant_id: int,
    role_id: int,
    permission_id: int,
    department_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    actor_id: int = 0,
) -> ScopedPermissionGrant:
    grant = await PermissionGrantStore(db).update(grant_id, role_id, permission_id, department_id, employee_id)
    await db.commit()
    await db.refresh(grant)
    
    await access.invalidate_all()
    await access.audit.record(
        actor_id,
        "update_scoped_permission",
        "scoped_permission",
        grant.id,
        {
            "message": _scope_details(department_id, employee_id, "Updated scoped permission"),
            "role_id": role_id,
            "permission_id": permission_id,
            "department_id": department_id,
            "employee_id": employee_id,
        },
    )
    return grant


async def delete_scoped_permission(db: AsyncSession, access: AccessControl, grant_id: int, actor_id: int = 0) -> None:
    await PermissionGrantStore(db).delete(grant_id)
    await db.commit()
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "delete_scoped_permission", "scoped_permission", grant_id)
