"""Unit tests for PermissionGrantStore and the scope-matching rule."""
import pytest

from app.core.errors import InvalidInput, NotFound
from app.features.permissions.grants import PermissionGrantStore, grant_matches
from app.features.permissions.models import ScopedPermissionGrant


def _grant(permission_id=1, department_id=None, employee_id=None):
    return ScopedPermissionGrant(
        role_id=1,
        permission_id=permission_id,
        department_id=department_id,
        employee_id=employee_id,
    )


# ---------------------------------------------------------------------------
# grant_matches
# ---------------------------------------------------------------------------


class TestGrantMatches:
    def test_blanket_grant_matches_any_scope(self):
        grant = _grant()
        assert grant.is_blanket
        assert grant_matches(grant, 1)
        assert grant_matches(grant, 1, department_id=5)
        assert grant_matches(grant, 1, department_id=5, target_employee_id=9)

    def test_other_permission_never_matches(self):
        assert not grant_matches(_grant(permission_id=2), 1)

    def test_department_grant_needs_same_department(self):
        grant = _grant(department_id=5)
        assert grant_matches(grant, 1, department_id=5)
        assert not grant_matches(grant, 1, department_id=6)

    def test_department_grant_does_not_match_unscoped_check(self):
        assert not grant_matches(_grant(department_id=5), 1)

    def test_employee_grant_needs_same_target(self):
        grant = _grant(employee_id=9)
        assert grant_matches(grant, 1, department_id=5, target_employee_id=9)
        assert not grant_matches(grant, 1, target_employee_id=10)
        assert not grant_matches(grant, 1)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestGrantStore:
    async def test_create_and_read_back(self, db, sales_org):
        store = PermissionGrantStore(db)
        grant = await store.create(sales_org.rep.id, sales_org.users_write.id, employee_id=11)
        await db.commit()

        fetched = await store.get(grant.id)
        assert fetched.employee_id == 11
        assert fetched.department_id is None

    async def test_unknown_role_is_not_found(self, db, sales_org):
        with pytest.raises(NotFound):
            await PermissionGrantStore(db).create(999, sales_org.users_read.id)

    async def test_unknown_department_is_not_found(self, db, sales_org):
        with pytest.raises(NotFound):
            await PermissionGrantStore(db).create(sales_org.rep.id, sales_org.users_read.id, department_id=999)

    async def test_zero_ids_are_invalid(self, db, sales_org):
        with pytest.raises(InvalidInput):
            await PermissionGrantStore(db).create(0, sales_org.users_read.id)

    async def test_grants_for_role_returns_scoped_and_blanket(self, db, sales_org):
        grants = await PermissionGrantStore(db).grants_for_role(sales_org.manager.id)
        assert {g.id for g in grants} == {sales_org.read_grant.id, sales_org.edit_grant.id}

    async def test_child_role_has_no_direct_grants(self, db, sales_org):
        assert await PermissionGrantStore(db).grants_for_role(sales_org.rep.id) == []

    async def test_deleted_grant_is_hidden(self, db, sales_org):
        store = PermissionGrantStore(db)
        await store.delete(sales_org.read_grant.id)
        await db.commit()

        grants = await store.grants_for_role(sales_org.manager.id)
        assert [g.id for g in grants] == [sales_org.edit_grant.id]
        with pytest.raises(NotFound):
            await store.get(sales_org.read_grant.id)

    async def test_grants_in_deleted_department_are_inert(self, db, sales_org):
        sales_org.sales.soft_delete()
        await db.commit()

        grants = await PermissionGrantStore(db).grants_for_role(sales_org.manager.id)
        assert [g.id for g in grants] == [sales_org.read_grant.id]

    async def test_grants_for_roles_filters_by_permission(self, db, sales_org):
        grants = await PermissionGrantStore(db).grants_for_roles(
            [sales_org.manager.id, sales_org.rep.id], permission_id=sales_org.emp_edit.id
        )
        assert [g.id for g in grants] == [sales_org.edit_grant.id]

    async def test_update_moves_grant(self, db, sales_org):
        store = PermissionGrantStore(db)
        await store.update(
            sales_org.edit_grant.id,
            sales_org.manager.id,
            sales_org.emp_edit.id,
            department_id=sales_org.hr.id,
        )
        await db.commit()

        assert (await store.get(sales_org.edit_grant.id)).department_id == sales_org.hr.id
