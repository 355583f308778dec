"""
Department routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.departments import service
from app.features.departments.schemas import DepartmentCreate, DepartmentResponse, DepartmentUpdate
from app.features.permissions.dependencies import get_access, get_actor_id
from app.features.permissions.engine import AccessControl


router = APIRouter(tags=["departments"])


@router.post("/", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    department_data: DepartmentCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Create a new department."""
    return await service.create_department(db, access, department_data.name, actor_id=actor_id)


@router.get("/", response_model=list[DepartmentResponse])
async def list_departments(db: Annotated[AsyncSession, Depends(get_db)]):
    """List live departments."""
    return await service.list_departments(db)


@router.get("/{department_id}", response_model=DepartmentResponse)
async def get_department(department_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.get_department(db, department_id)


@router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: int,
    department_data: DepartmentUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Rename a department."""
    return await service.update_department(db, access, department_id, department_data.name, actor_id=actor_id)


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_department(
    department_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """
    Soft-delete a department.
    
    Grants scoped to it stop matching immediately.
    """
    await service.delete_department(db, access, department_id, actor_id=actor_id)
