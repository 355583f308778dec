"""
Role administration.

Every role write invalidates the whole decision cache, since moving or
removing a role can change the outcome for any employee below it.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidInput
from app.features.departments.service import get_department
from app.features.permissions.engine import AccessControl
from app.features.roles.hierarchy import RoleHierarchyStore
from app.features.roles.models import Role
from app.utils import get_logger


log = get_logger(__name__)


def _validate(name: str, department_id: int) -> str:
    if not name or not name.strip():
        raise InvalidInput("role name must not be empty")
    if not department_id or department_id <= 0:
        raise InvalidInput("department id must be positive")
    return name.strip()


async def get_role(db: AsyncSession, role_id: int) -> Role:
    return await RoleHierarchyStore(db).get_role(role_id)


async def list_roles(db: AsyncSession, department_id: Optional[int] = None) -> list[Role]:
    stmt = select(Role).where(Role.deleted_at.is_(None))
    if department_id is not None:
        stmt = stmt.where(Role.department_id == department_id)
    result = await db.execute(stmt.order_by(Role.id))
    return list(result.scalars().all())


async def create_role(
    db: AsyncSession,
    access: AccessControl,
    name: str,
    department_id: int,
    parent_role_id: Optional[int] = None,
    is_global: bool = False,
    actor_id: int = 0,
) -> Role:
    name = _validate(name, department_id)
    await get_department(db, department_id)
    # A new role has no descendants, so only parent existence can fail here
    await RoleHierarchyStore(db).ensure_acyclic(None, parent_role_id)
    
    role = Role(
        name=name,
        department_id=department_id,
        parent_role_id=parent_role_id,
        is_global=is_global,
    )
    db.add(role)
    await db.commit()
    await db.refresh(role)
    
    await access.invalidate_all()
    await access.audit.record(
        actor_id,
        "create_role",
        "role",
        role.id,
        {"name": name, "department_id": department_id, "parent_role_id": parent_role_id},
    )
    return role


async def update_role(
    db: AsyncSession,
    access: AccessControl,
    role_id: int,
    name: str,
    department_id: int,
    parent_role_id: Optional[int] = None,
    is_global: bool = False,
    actor_id: int = 0,
) -> Role:
    """
    Replace a role's attributes.

    Raises:
        NotFound: role, department or parent unknown
        CycleDetected: the new parent sits below this role
    """
    name = _validate(name, department_id)
    hierarchy = RoleHierarchyStore(db)
    role = await hierarchy.get_role(role_id)
    await get_department(db, department_id)
    await hierarchy.ensure_acyclic(role_id, parent_role_id)
    
    role.name = name
    role.department_id = department_id
    role.parent_role_id = parent_role_id
    role.is_global = is_global
    await db.commit()
    await db.refresh(role)
    log.info(f"Role {role_id} updated (parent={parent_role_id})")
    
    await access.invalidate_all()
    await access.audit.record(
        actor_id,
        "update_role",
        "role",
        role.id,
        {"name": name, "department_id": department_id, "parent_role_id": parent_role_id},
    )
    return role


async def delete_role(db: AsyncSession, access: AccessControl, role_id: int, actor_id: int = 0) -> None:
    """
    Soft-delete a role.

    Children keep their parent_role_id; with the parent gone they resolve
    as roots until re-parented.
    """
    role = await RoleHierarchyStore(db).get_role(role_id)
    role.soft_delete()
    await db.commit()
    log.info(f"Role {role_id} ({role.name!r}) deleted")
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "delete_role", "role", role_id, {"name": role.name})

