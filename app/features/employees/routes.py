"""
Employee role assignment and employee query routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.employees import service
from app.features.employees.schemas import (
    AssignRoleRequest,
    BulkRoleRequest,
    BulkRoleResponse,
    EffectivePermissionsRequest,
    EffectivePermissionsResponse,
    EmployeeRoleResponse,
    ReassignRoleRequest,
    SubordinatesResponse,
)
from app.features.permissions.dependencies import get_access, get_actor_id
from app.features.permissions.engine import AccessControl


router = APIRouter(tags=["employees"])


# Bulk endpoints
@router.post("/roles/bulk-assign", response_model=BulkRoleResponse)
async def bulk_assign_roles(
    request_data: BulkRoleRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Assign roles to many employees in one transaction. Existing assignments are kept."""
    created = await service.bulk_assign_roles(db, access, request_data.assignments, actor_id=actor_id)
    return BulkRoleResponse(
        message=f"Assigned {created} roles",
        affected_count=created,
        employee_count=len(request_data.assignments),
    )


@router.post("/roles/bulk-revoke", response_model=BulkRoleResponse)
async def bulk_revoke_roles(
    request_data: BulkRoleRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    revoked = await service.bulk_revoke_roles(db, access, request_data.assignments, actor_id=actor_id)
    return BulkRoleResponse(
        message=f"Revoked {revoked} roles",
        affected_count=revoked,
        employee_count=len(request_data.assignments),
    )


@router.post("/permissions", response_model=EffectivePermissionsResponse)
async def effective_permissions(
    request_data: EffectivePermissionsRequest,
    access: Annotated[AccessControl, Depends(get_access)],
):
    """Permission names each employee can reach through their roles, ignoring scope."""
    return EffectivePermissionsResponse(
        permissions=await access.effective_permissions(request_data.employee_ids)
    )


# Single employee endpoints
@router.post("/{employee_id}/roles", response_model=EmployeeRoleResponse, status_code=status.HTTP_201_CREATED)
async def assign_role(
    employee_id: int,
    request_data: AssignRoleRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    return await service.assign_role(db, access, employee_id, request_data.role_id, actor_id=actor_id)


@router.get("/{employee_id}/roles", response_model=list[EmployeeRoleResponse])
async def list_employee_roles(employee_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.list_employee_roles(db, employee_id)


@router.get("/{employee_id}/roles/{role_id}", response_model=EmployeeRoleResponse)
async def get_employee_role(employee_id: int, role_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.get_employee_role(db, employee_id, role_id)


@router.put("/{employee_id}/roles/{role_id}", response_model=EmployeeRoleResponse)
async def update_employee_role(
    employee_id: int,
    role_id: int,
    request_data: ReassignRoleRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Replace role_id with new_role_id for this employee."""
    return await service.update_employee_role(
        db, access, employee_id, role_id, request_data.new_role_id, actor_id=actor_id
    )


@router.delete("/{employee_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_role(
    employee_id: int,
    role_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    await service.revoke_role(db, access, employee_id, role_id, actor_id=actor_id)


@router.get("/{employee_id}/subordinates", response_model=SubordinatesResponse)
async def get_subordinates(employee_id: int, access: Annotated[AccessControl, Depends(get_access)]):
    """Employees holding any role at or below one of this employee's roles."""
    return SubordinatesResponse(employee_id=employee_id, subordinates=await access.subordinates(employee_id))
