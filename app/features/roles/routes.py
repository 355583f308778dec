"""
Role and role hierarchy routes.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.dependencies import get_access, get_actor_id
from app.features.permissions.engine import AccessControl
from app.features.roles import service
from app.features.roles.hierarchy import RoleHierarchyStore
from app.features.roles.schemas import RoleCreate, RoleMembersResponse, RoleNodeResponse, RoleResponse, RoleUpdate


router = APIRouter(tags=["roles"])


@router.post("/", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Create a role, optionally under a parent role."""
    return await service.create_role(
        db,
        access,
        role_data.name,
        role_data.department_id,
        parent_role_id=role_data.parent_role_id,
        is_global=role_data.is_global,
        actor_id=actor_id,
    )


@router.get("/", response_model=list[RoleResponse])
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    department_id: Optional[int] = None,
):
    """List live roles, optionally for one department."""
    return await service.list_roles(db, department_id)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(role_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.get_role(db, role_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Replace a role. A parent that would create a cycle is rejected with 409."""
    return await service.update_role(
        db,
        access,
        role_id,
        role_data.name,
        role_data.department_id,
        parent_role_id=role_data.parent_role_id,
        is_global=role_data.is_global,
        actor_id=actor_id,
    )


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    await service.delete_role(db, access, role_id, actor_id=actor_id)


# Hierarchy reads
@router.get("/{role_id}/children", response_model=list[RoleNodeResponse])
async def get_children(role_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await RoleHierarchyStore(db).get_children(role_id)


@router.get("/{role_id}/descendants", response_model=list[RoleNodeResponse])
async def get_descendants(role_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    """The role and every role below it."""
    return await RoleHierarchyStore(db).get_descendants(role_id)


@router.get("/{role_id}/ancestors", response_model=list[RoleNodeResponse])
async def get_ancestors(role_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    """The role, its parent, and so on up to the root."""
    return await RoleHierarchyStore(db).get_ancestor_chain(role_id)


@router.get("/{role_id}/employees", response_model=RoleMembersResponse)
async def get_role_members(role_id: int, access: Annotated[AccessControl, Depends(get_access)]):
    """Employees holding this role directly, not through a child role."""
    return RoleMembersResponse(role_id=role_id, employees=await access.role_members(role_id))
