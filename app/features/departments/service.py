"""
Department administration.

Department changes invalidate the whole decision cache: grants scoped to a
department stop matching once it is deleted.
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidInput, NotFound
from app.features.departments.models import Department
from app.features.permissions.engine import AccessControl
from app.utils import get_logger


log = get_logger(__name__)


def _clean_name(name: str) -> str:
    if not name or not name.strip():
        raise InvalidInput("department name must not be empty")
    return name.strip()


async def get_department(db: AsyncSession, department_id: int) -> Department:
    if not department_id or department_id <= 0:
        raise InvalidInput("department id must be positive")
    result = await db.execute(
        select(Department).where(Department.id == department_id, Department.deleted_at.is_(None))
    )
    department = result.scalar_one_or_none()
    if department is None:
        raise NotFound(f"department {department_id} not found")
    return department


async def list_departments(db: AsyncSession) -> list[Department]:
    result = await db.execute(
        select(Department).where(Department.deleted_at.is_(None)).order_by(Department.id)
    )
    return list(result.scalars().all())


async def create_department(db: AsyncSession, access: AccessControl, name: str, actor_id: int = 0) -> Department:
    name = _clean_name(name)
    department = Department(name=name)
    db.add(department)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"department {name!r} already exists")
    await db.refresh(department)
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "create_department", "department", department.id, {"name": name})
    return department


async def update_department(
    db: AsyncSession,
    access: AccessControl,
    department_id: int,
    name: str,
    actor_id: int = 0,
) -> Department:
    name = _clean_name(name)
    department = await get_department(db, department_id)
    department.name = name
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"department {name!r} already exists")
    await db.refresh(department)
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "update_department", "department", department.id, {"name": name})
    return department


async def delete_department(db: AsyncSession, access: AccessControl, department_id: int, actor_id: int = 0) -> None:
    department = await get_department(db, department_id)
    department.soft_delete()
    await db.commit()
    
    await access.invalidate_all()
    await access.audit.record(actor_id, "delete_department", "department", department_id, {"name": department.name})
