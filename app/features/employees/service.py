"""
Employee role assignment administration.

Assignment changes only affect the employee involved, so they invalidate
that employee's cached decisions and nothing else.
"""
from typing import Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.engine import AccessControl
from app.features.roles.assignments import AssignmentStore
from app.features.roles.models import EmployeeRoleAssignment
from app.utils import get_logger


log = get_logger(__name__)


async def assign_role(
    db: AsyncSession,
    access: AccessControl,
    employee_id: int,
    role_id: int,
    actor_id: int = 0,
) -> EmployeeRoleAssignment:
    assignment = await AssignmentStore(db).assign(employee_id, role_id)
    await db.commit()
    await db.refresh(assignment)
    
    await access.invalidate_employee(employee_id)
    await access.audit.record(
        actor_id,
        "assign_role",
        "employee_role",
        role_id,
        {"employee_id": employee_id, "message": "Assigned role to employee"},
    )
    return assignment


async def update_employee_role(
    db: AsyncSession,
    access: AccessControl,
    employee_id: int,
    old_role_id: int,
    new_role_id: int,
    actor_id: int = 0,
) -> EmployeeRoleAssignment:
    assignment = await AssignmentStore(db).reassign(employee_id, old_role_id, new_role_id)
    await db.commit()
    await db.refresh(assignment)
    
    await access.invalidate_employee(employee_id)
    await access.audit.record(
        actor_id,
        "update_employee_role",
        "employee_role",
        new_role_id,
        {"employee_id": employee_id, "old_role_id": old_role_id},
    )
    return assignment


async def get_employee_role(db: AsyncSession, employee_id: int, role_id: int) -> EmployeeRoleAssignment:
    return await AssignmentStore(db).get(employee_id, role_id)


async def list_employee_roles(db: AsyncSession, employee_id: int) -> list[EmployeeRoleAssignment]:
    return await AssignmentStore(db).list_for(employee_id)


async def revoke_role(
    db: AsyncSession,
    access: AccessControl,
    employee_id: int,
    role_id: int,
    actor_id: int = 0,
) -> None:
    await AssignmentStore(db).revoke(employee_id, role_id)
    await db.commit()
    
    await access.invalidate_employee(employee_id)
    await access.audit.record(
        actor_id,
        "revoke_role",
        "employee_role",
        role_id,
        {"employee_id": employee_id, "message": "Removed role from employee"},
    )


async def bulk_assign_roles(
    db: AsyncSession,
    access: AccessControl,
    assignments: Mapping[int, Sequence[int]],
    actor_id: int = 0,
) -> int:
    """Assign roles to many employees in one transaction. Pairs already held are left alone."""
    created = await AssignmentStore(db).bulk_assign(assignments)
    await db.commit()
    log.info(f"Bulk assigned {created} roles across {len(assignments)} employees")
    
    await access.invalidate_employees(assignments.keys())
    await access.audit.record(
        actor_id,
        "bulk_assign_roles",
        "employee_role",
        details={"employees": sorted(assignments), "created": created},
    )
    return created


async def bulk_revoke_roles(
    db: AsyncSession,
    access: AccessControl,
    removals: Mapping[int, Sequence[int]],
    actor_id: int = 0,
) -> int:
    revoked = await AssignmentStore(db).bulk_revoke(removals)
    await db.commit()
    log.info(f"Bulk revoked {revoked} roles across {len(removals)} employees")
    
    await access.invalidate_employees(removals.keys())
    await access.audit.record(
        actor_id,
        "bulk_revoke_roles",
        "employee_role",
        details={"employees": sorted(removals), "revoked": revoked},
    )
    return revoked
