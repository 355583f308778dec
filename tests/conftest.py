"""
Shared fixtures.

Every test gets its own SQLite file, so tests never see each other's rows
and the resolver's per-call sessions all hit the same database.
"""
import os
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
import pytest_asyncio

from app.core.database.engine import build_engine, build_session_factory, init_db
from app.features.permissions.engine import AccessControl
from tests.factories import add_department, add_grant, add_permission, add_role, assign
from tests.fakes import FakeKeyValueCache


MANAGER_EMPLOYEE = 3
REP_EMPLOYEE = 7


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rbac.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache_backend():
    return FakeKeyValueCache()


@pytest.fixture
def access(session_factory, cache_backend):
    return AccessControl(
        session_factory,
        cache_backend,
        namespace="test",
        cache_ttl=60,
        max_workers=4,
        audit_enabled=True,
    )


@pytest_asyncio.fixture
async def sales_org(db):
    """
    Sales and HR departments with a two-level Sales hierarchy.

    Manager (Sales, root) holds a blanket users.read and an emp.edit scoped
    to Sales. Rep (Sales, child of Manager) holds nothing of its own.
    Employee 3 is a Manager, employee 7 a Rep.
    """
    sales = await add_department(db, "Sales")
    hr = await add_department(db, "HR")
    manager = await add_role(db, "Manager", sales)
    rep = await add_role(db, "Rep", sales, parent=manager)
    users_read = await add_permission(db, "users.read")
    users_write = await add_permission(db, "users.write")
    emp_edit = await add_permission(db, "emp.edit")
    read_grant = await add_grant(db, manager, users_read)
    edit_grant = await add_grant(db, manager, emp_edit, department=sales)
    await assign(db, MANAGER_EMPLOYEE, manager)
    await assign(db, REP_EMPLOYEE, rep)
    return SimpleNamespace(
        sales=sales,
        hr=hr,
        manager=manager,
        rep=rep,
        users_read=users_read,
        users_write=users_write,
        emp_edit=emp_edit,
        read_grant=read_grant,
        edit_grant=edit_grant,
        manager_employee=MANAGER_EMPLOYEE,
        rep_employee=REP_EMPLOYEE,
    )
