"""
Permission management and permission check routes.

Provides endpoints for permissions, scoped grants, single and batch checks,
and the decision cache.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.rate_limit import limiter
from app.features.permissions import service
from app.features.permissions.dependencies import get_access, get_actor_id
from app.features.permissions.engine import AccessControl
from app.features.permissions.schemas import (
    BulkPermissionCheckRequest,
    BulkPermissionCheckResponse,
    CacheClearResponse,
    CacheStatsResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    ScopedPermissionCreate,
    ScopedPermissionResponse,
    ScopedPermissionUpdate,
)
from app.features.permissions.types import PermissionCheck
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Scoped Grant Routes
# ============================================================================

@router.post("/grants", response_model=ScopedPermissionResponse, status_code=status.HTTP_201_CREATED)
async def add_scoped_permission(
    grant: ScopedPermissionCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Grant a permission to a role, optionally scoped to a department and/or employee."""
    return await service.add_scoped_permission(
        db,
        access,
        grant.role_id,
        grant.permission_id,
        department_id=grant.department_id,
        employee_id=grant.employee_id,
        actor_id=actor_id,
    )


@router.get("/grants", response_model=list[ScopedPermissionResponse])
async def list_scoped_permissions(
    db: Annotated[AsyncSession, Depends(get_db)],
    role_id: Optional[int] = None,
):
    return await service.list_scoped_permissions(db, role_id)


@router.get("/grants/{grant_id}", response_model=ScopedPermissionResponse)
async def get_scoped_permission(grant_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.get_scoped_permission(db, grant_id)


@router.put("/grants/{grant_id}", response_model=ScopedPermissionResponse)
async def update_scoped_permission(
    grant_id: int,
    grant: ScopedPermissionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    return await service.update_scoped_permission(
        db,
        access,
        grant_id,
        grant.role_id,
        grant.permission_id,
        department_id=grant.department_id,
        employee_id=grant.employee_id,
        actor_id=actor_id,
    )


@router.delete("/grants/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scoped_permission(
    grant_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    await service.delete_scoped_permission(db, access, grant_id, actor_id=actor_id)


# ============================================================================
# Permission Check Routes
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    access: Annotated[AccessControl, Depends(get_access)],
):
    """Decide whether an employee holds a permission in the given scope."""
    decision = await access.check(
        check.employee_id,
        check.permission,
        department_id=check.department_id,
        target_employee_id=check.target_employee_id,
    )
    return PermissionCheckResponse(
        **check.model_dump(),
        decision=decision,
        allowed=decision.allowed,
    )


@router.post("/check-many", response_model=BulkPermissionCheckResponse)
@limiter.limit(config.BULK_CHECK_RATE_LIMIT)
async def check_many_permissions(
    request: Request,
    payload: BulkPermissionCheckRequest,
    access: Annotated[AccessControl, Depends(get_access)],
):
    """
    Decide a batch of checks concurrently.
    
    Results come back in request order. An item that cannot be evaluated
    carries its error and does not fail the batch.
    """
    checks = [
        PermissionCheck(
            employee_id=item.employee_id,
            permission=item.permission,
            department_id=item.department_id,
            target_employee_id=item.target_employee_id,
        )
        for item in payload.checks
    ]
    outcomes = await access.check_many(checks)
    
    results = []
    allowed_count = denied_count = failed_count = 0
    for outcome in outcomes:
        if outcome.error is not None:
            failed_count += 1
        elif outcome.allowed:
            allowed_count += 1
        else:
            denied_count += 1
        results.append(
            PermissionCheckResponse(
                employee_id=outcome.check.employee_id,
                permission=outcome.check.permission,
                department_id=outcome.check.department_id,
                target_employee_id=outcome.check.target_employee_id,
                decision=outcome.decision,
                allowed=outcome.allowed,
                error=str(outcome.error) if outcome.error is not None else None,
            )
        )
    
    log.debug(f"Batch of {len(checks)}: {allowed_count} allowed, {denied_count} denied, {failed_count} failed")
    return BulkPermissionCheckResponse(
        results=results,
        allowed_count=allowed_count,
        denied_count=denied_count,
        failed_count=failed_count,
    )


# ============================================================================
# Cache Routes
# ============================================================================

@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(access: Annotated[AccessControl, Depends(get_access)]):
    return await access.cache_stats()


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Drop every cached decision."""
    deleted = await access.clear_cache(actor_id)
    return CacheClearResponse(deleted_keys=deleted)


# ============================================================================
# Permission Routes
# ============================================================================

@router.post("/", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Create a new permission."""
    return await service.create_permission(
        db, access, permission.name, is_global=permission.is_global, actor_id=actor_id
    )


@router.get("/", response_model=list[PermissionResponse])
async def list_permissions(db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.list_permissions(db)


@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(permission_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    return await service.get_permission(db, permission_id)


@router.put("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: int,
    permission: PermissionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    return await service.update_permission(
        db, access, permission_id, permission.name, is_global=permission.is_global, actor_id=actor_id
    )


@router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessControl, Depends(get_access)],
    actor_id: Annotated[int, Depends(get_actor_id)],
):
    """Soft-delete a permission. Checks against it resolve to deny from then on."""
    await service.delete_permission(db, access, permission_id, actor_id=actor_id)
