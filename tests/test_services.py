"""Tests for the administrative services: validation, invalidation and audit."""
import pytest

from app.core.errors import Conflict, CycleDetected, InvalidInput, NotFound
from app.features.departments import service as department_service
from app.features.employees import service as employee_service
from app.features.permissions import service as permission_service
from app.features.permissions.types import Decision
from app.features.roles import service as role_service
from tests.factories import audit_entries, count_audit


async def _prime(access, sales_org):
    """Fill the cache with one decision for each seeded employee."""
    await access.check(sales_org.manager_employee, "users.read")
    await access.check(sales_org.rep_employee, "users.read")


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


class TestDepartments:
    async def test_duplicate_name_conflicts(self, db, access, sales_org):
        with pytest.raises(Conflict):
            await department_service.create_department(db, access, "Sales")

    async def test_blank_name_is_invalid(self, db, access):
        with pytest.raises(InvalidInput):
            await department_service.create_department(db, access, "  ")

    async def test_create_is_audited_with_actor(self, db, access, session_factory):
        department = await department_service.create_department(db, access, "Finance", actor_id=99)

        entries = await audit_entries(session_factory, "create_department")
        assert [(e.actor_id, e.target_id) for e in entries] == [(99, department.id)]

    async def test_deleted_department_disappears(self, db, access, sales_org):
        await department_service.delete_department(db, access, sales_org.hr.id)

        names = [d.name for d in await department_service.list_departments(db)]
        assert names == ["Sales"]
        with pytest.raises(NotFound):
            await department_service.get_department(db, sales_org.hr.id)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class TestRoles:
    async def test_reparent_under_descendant_is_rejected(self, db, access, sales_org):
        with pytest.raises(CycleDetected):
            await role_service.update_role(
                db, access, sales_org.manager.id, "Manager", sales_org.sales.id, parent_role_id=sales_org.rep.id
            )

    async def test_unknown_parent_is_not_found(self, db, access, sales_org):
        with pytest.raises(NotFound):
            await role_service.create_role(db, access, "Intern", sales_org.sales.id, parent_role_id=999)

    async def test_unknown_department_is_not_found(self, db, access):
        with pytest.raises(NotFound):
            await role_service.create_role(db, access, "Intern", 999)

    async def test_role_write_clears_every_decision(self, db, access, cache_backend, sales_org):
        await _prime(access, sales_org)
        cache_backend.store["test:meta:version"] = "1"

        await role_service.create_role(db, access, "Intern", sales_org.sales.id, parent_role_id=sales_org.rep.id)

        assert cache_backend.decisions() == {}
        assert "test:meta:version" in cache_backend.store

    async def test_deleting_parent_cuts_inheritance(self, db, access, sales_org):
        assert await access.check(sales_org.rep_employee, "users.read") is Decision.ALLOW

        await role_service.delete_role(db, access, sales_org.manager.id)

        assert await access.check(sales_org.rep_employee, "users.read") is Decision.DENY
        assert [r.name for r in await role_service.list_roles(db, sales_org.sales.id)] == ["Rep"]

    async def test_update_moves_role(self, db, access, sales_org):
        role = await role_service.create_role(db, access, "Intern", sales_org.hr.id)

        updated = await role_service.update_role(
            db, access, role.id, "Sales Intern", sales_org.sales.id, parent_role_id=sales_org.rep.id
        )

        assert (updated.name, updated.department_id, updated.parent_role_id) == (
            "Sales Intern",
            sales_org.sales.id,
            sales_org.rep.id,
        )


# ---------------------------------------------------------------------------
# Permissions and grants
# ---------------------------------------------------------------------------


class TestPermissions:
    async def test_duplicate_name_conflicts(self, db, access, sales_org):
        with pytest.raises(Conflict):
            await permission_service.create_permission(db, access, "users.read")

    async def test_deleted_permission_denies(self, db, access, sales_org):
        await permission_service.delete_permission(db, access, sales_org.users_read.id)

        assert await access.check(sales_org.manager_employee, "users.read") is Decision.DENY
        names = [p.name for p in await permission_service.list_permissions(db)]
        assert "users.read" not in names

    async def test_new_grant_takes_effect_despite_cached_deny(self, db, access, sales_org):
        assert await access.check(sales_org.rep_employee, "users.write") is Decision.DENY

        await permission_service.add_scoped_permission(db, access, sales_org.rep.id, sales_org.users_write.id)

        assert await access.check(sales_org.rep_employee, "users.write") is Decision.ALLOW

    async def test_grant_update_rescopes(self, db, access, sales_org):
        sales, hr = sales_org.sales.id, sales_org.hr.id
        await permission_service.update_scoped_permission(
            db, access, sales_org.edit_grant.id, sales_org.manager.id, sales_org.emp_edit.id, department_id=hr
        )

        assert await access.check(sales_org.manager_employee, "emp.edit", department_id=sales) is Decision.DENY
        assert await access.check(sales_org.manager_employee, "emp.edit", department_id=hr) is Decision.ALLOW

    async def test_list_grants_by_role(self, db, sales_org):
        grants = await permission_service.list_scoped_permissions(db, sales_org.manager.id)
        assert {g.id for g in grants} == {sales_org.read_grant.id, sales_org.edit_grant.id}
        assert await permission_service.list_scoped_permissions(db, sales_org.rep.id) == []


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class TestAssignments:
    async def test_assign_invalidates_only_that_employee(self, db, access, cache_backend, sales_org):
        await _prime(access, sales_org)

        await employee_service.assign_role(db, access, sales_org.rep_employee, sales_org.manager.id)

        assert cache_backend.keys_for(sales_org.rep_employee) == []
        assert cache_backend.keys_for(sales_org.manager_employee) == ["test:perm:3:users.read"]

    async def test_duplicate_assign_conflicts(self, db, access, sales_org):
        with pytest.raises(Conflict):
            await employee_service.assign_role(db, access, sales_org.rep_employee, sales_org.rep.id)

    async def test_revoke_then_reassign(self, db, access, sales_org):
        rep = sales_org.rep_employee
        await employee_service.revoke_role(db, access, rep, sales_org.rep.id)
        assert await access.check(rep, "users.read") is Decision.DENY
        assert await employee_service.list_employee_roles(db, rep) == []

        await employee_service.assign_role(db, access, rep, sales_org.rep.id)
        assert await access.check(rep, "users.read") is Decision.ALLOW

    async def test_revoking_missing_assignment_is_not_found(self, db, access, sales_org):
        with pytest.raises(NotFound):
            await employee_service.revoke_role(db, access, sales_org.rep_employee, sales_org.manager.id)

    async def test_update_employee_role(self, db, access, sales_org):
        rep, sales = sales_org.rep_employee, sales_org.sales.id
        assert await access.check(rep, "emp.edit", department_id=sales) is Decision.ALLOW

        await employee_service.update_employee_role(db, access, rep, sales_org.rep.id, sales_org.manager.id)

        roles = await employee_service.list_employee_roles(db, rep)
        assert [a.role_id for a in roles] == [sales_org.manager.id]
        assert (await employee_service.get_employee_role(db, rep, sales_org.manager.id)).employee_id == rep

    async def test_bulk_assign_is_idempotent(self, db, access, sales_org):
        mapping = {40: [sales_org.rep.id], 41: [sales_org.rep.id, sales_org.manager.id]}

        assert await employee_service.bulk_assign_roles(db, access, mapping) == 3
        assert await employee_service.bulk_assign_roles(db, access, mapping) == 0
        assert await access.check(40, "users.read") is Decision.ALLOW

    async def test_bulk_assign_rejects_unknown_role(self, db, access, sales_org):
        with pytest.raises(NotFound):
            await employee_service.bulk_assign_roles(db, access, {40: [sales_org.rep.id, 999]})

    async def test_bulk_revoke(self, db, access, cache_backend, sales_org):
        await _prime(access, sales_org)
        removals = {
            sales_org.rep_employee: [sales_org.rep.id],
            sales_org.manager_employee: [sales_org.manager.id, sales_org.rep.id],
        }

        assert await employee_service.bulk_revoke_roles(db, access, removals) == 2
        assert cache_backend.decisions() == {}
        assert await access.check(sales_org.manager_employee, "users.read") is Decision.DENY
        assert await count_audit(access.session_factory, "bulk_revoke_roles") == 1


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_subordinates(self, access, sales_org):
        assert await access.subordinates(sales_org.manager_employee) == [3, 7]
        assert await access.subordinates(sales_org.rep_employee) == [7]
        assert await access.subordinates(500) == []

    async def test_role_members_are_direct_holders_only(self, db, access, sales_org):
        await employee_service.assign_role(db, access, 12, sales_org.manager.id)

        assert await access.role_members(sales_org.manager.id) == [3, 12]
        assert await access.role_members(sales_org.rep.id) == [7]

    async def test_role_members_skip_revoked_assignments(self, db, access, sales_org):
        await employee_service.revoke_role(db, access, sales_org.rep_employee, sales_org.rep.id)

        assert await access.role_members(sales_org.rep.id) == []

    async def test_role_members_of_unknown_role(self, access, sales_org):
        with pytest.raises(NotFound):
            await access.role_members(999)
        with pytest.raises(InvalidInput):
            await access.role_members(0)

    async def test_effective_permissions_ignore_scope(self, access, sales_org):
        effective = await access.effective_permissions([7, 3, 500])

        assert effective == {
            7: ["emp.edit", "users.read"],
            3: ["emp.edit", "users.read"],
            500: [],
        }

    async def test_effective_permissions_rejects_bad_ids(self, access):
        with pytest.raises(InvalidInput):
            await access.effective_permissions([1, 0])

    async def test_clear_cache_is_audited(self, access, cache_backend, session_factory, sales_org):
        await _prime(access, sales_org)

        assert await access.clear_cache(actor_id=5) == 2
        entries = await audit_entries(session_factory, "clear_cache")
        assert entries[0].details == {"deleted_keys": 2}
