"""
Seed script to populate a starter access-control setup.

Run this script after database initialization to create:
- Default departments
- Default permissions
- A role hierarchy per department
- Initial grants (blanket and department-scoped)

Existing rows are left alone, so running it twice is harmless.

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.departments.models import Department
from app.features.permissions.models import Permission, ScopedPermissionGrant
from app.features.roles.models import Role
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_DEPARTMENTS = ["Sales", "HR", "Engineering"]


DEFAULT_PERMISSIONS = [
    # (name, is_global)
    ("users.read", True),
    ("users.write", False),
    ("emp.view", False),
    ("emp.edit", False),
    ("reports.read", False),
    ("reports.export", False),
    ("roles.manage", True),
    ("permissions.manage", True),
]


# role name -> (department, parent role, is_global)
DEFAULT_ROLES = {
    "Administrator": ("HR", None, True),
    "HR Manager": ("HR", "Administrator", False),
    "HR Associate": ("HR", "HR Manager", False),
    "Sales Manager": ("Sales", None, False),
    "Sales Rep": ("Sales", "Sales Manager", False),
    "Engineering Lead": ("Engineering", None, False),
    "Engineer": ("Engineering", "Engineering Lead", False),
}


# (role, permission, department scope)
DEFAULT_GRANTS = [
    ("Administrator", "roles.manage", None),
    ("Administrator", "permissions.manage", None),
    ("HR Manager", "emp.edit", None),
    ("HR Associate", "emp.view", None),
    ("Sales Manager", "users.read", None),
    ("Sales Manager", "emp.edit", "Sales"),
    ("Sales Manager", "reports.export", "Sales"),
    ("Sales Rep", "reports.read", "Sales"),
    ("Engineering Lead", "users.read", None),
    ("Engineering Lead", "emp.view", "Engineering"),
]


async def _get_or_create(db: AsyncSession, model, defaults: Optional[dict] = None, **lookup):
    result = await db.execute(select(model).filter_by(**lookup))
    existing = result.scalars().first()
    if existing:
        log.debug(f"{model.__name__} {lookup} already exists, skipping")
        return existing, False
    obj = model(**lookup, **(defaults or {}))
    db.add(obj)
    await db.flush()
    return obj, True


async def seed_departments(db: AsyncSession) -> dict[str, Department]:
    log.info("Creating default departments...")
    departments = {}
    for name in DEFAULT_DEPARTMENTS:
        departments[name], created = await _get_or_create(db, Department, name=name)
        if created:
            log.info(f"Created department: {name}")
    return departments


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions.
    
    Returns:
        Dictionary mapping permission names to Permission objects
    """
    log.info("Creating default permissions...")
    permissions_map = {}
    for name, is_global in DEFAULT_PERMISSIONS:
        permissions_map[name], created = await _get_or_create(
            db, Permission, defaults={"is_global": is_global}, name=name
        )
        if created:
            log.info(f"Created permission: {name}")
    return permissions_map


async def seed_roles(db: AsyncSession, departments: dict[str, Department]) -> dict[str, Role]:
    """Create default roles. Parents are listed before their children, so they always exist first."""
    log.info("Creating default roles...")
    roles: dict[str, Role] = {}
    for role_name, (department, parent, is_global) in DEFAULT_ROLES.items():
        roles[role_name], created = await _get_or_create(
            db,
            Role,
            defaults={
                "parent_role_id": roles[parent].id if parent else None,
                "is_global": is_global,
            },
            name=role_name,
            department_id=departments[department].id,
        )
        if created:
            log.info(f"Created role '{role_name}' in {department}" + (f" under '{parent}'" if parent else ""))
    return roles


async def seed_grants(
    db: AsyncSession,
    departments: dict[str, Department],
    permissions_map: dict[str, Permission],
    roles: dict[str, Role],
):
    log.info("Creating default grants...")
    for role_name, permission_name, department in DEFAULT_GRANTS:
        _, created = await _get_or_create(
            db,
            ScopedPermissionGrant,
            role_id=roles[role_name].id,
            permission_id=permissions_map[permission_name].id,
            department_id=departments[department].id if department else None,
            employee_id=None,
        )
        if created:
            scope = f" in {department}" if department else ""
            log.info(f"Granted '{permission_name}' to '{role_name}'{scope}")


async def main():
    """Main function to seed the access-control tables."""
    log.info("Starting permission seeding...")
    
    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()
    
    # Get database session
    async for db in get_db():
        try:
            departments = await seed_departments(db)
            permissions_map = await seed_permissions(db)
            roles = await seed_roles(db, departments)
            await seed_grants(db, departments, permissions_map, roles)
            await db.commit()
            
            log.info("Permission seeding completed successfully!")
            log.info("")
            log.info("Default roles created:")
            for role_name, (department, parent, _) in DEFAULT_ROLES.items():
                log.info(f"  - {role_name} ({department})" + (f" <- {parent}" if parent else ""))
            
        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
