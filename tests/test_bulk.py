"""Tests for BulkResolver ordering, per-item failures and the worker bound."""
import asyncio

import pytest

from app.core.errors import InvalidInput, StoreUnavailable
from app.features.permissions.bulk import BulkResolver
from app.features.permissions.types import Decision, PermissionCheck


class RecordingResolver:
    """Fake resolver that tracks how many resolve calls run at once."""

    def __init__(self, delay: float = 0.01, fail_on: str | None = None, crash_on: str | None = None):
        self.delay = delay
        self.fail_on = fail_on
        self.crash_on = crash_on
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def resolve(self, employee_id, permission_name, department_id=None, target_employee_id=None):
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            if permission_name == self.fail_on:
                raise StoreUnavailable("database went away")
            if permission_name == self.crash_on:
                raise RuntimeError("unexpected resolver bug")
            return Decision.ALLOW if employee_id % 2 else Decision.DENY
        finally:
            self.active -= 1


def _checks(n):
    return [PermissionCheck(employee_id=i, permission="users.read") for i in range(1, n + 1)]


# ---------------------------------------------------------------------------
# Against the real resolver
# ---------------------------------------------------------------------------


class TestBulkWithStore:
    async def test_duplicates_keep_input_order(self, access, sales_org):
        checks = [
            PermissionCheck(sales_org.rep_employee, "users.read"),
            PermissionCheck(sales_org.manager_employee, "users.write"),
            PermissionCheck(sales_org.rep_employee, "users.read"),
        ]

        outcomes = await access.check_many(checks)

        assert [outcome.check for outcome in outcomes] == checks
        assert [outcome.decision for outcome in outcomes] == [Decision.ALLOW, Decision.DENY, Decision.ALLOW]
        assert outcomes[0] == outcomes[2]

    async def test_invalid_item_does_not_abort_batch(self, access, sales_org):
        checks = [
            PermissionCheck(sales_org.rep_employee, "users.read"),
            PermissionCheck(0, "users.read"),
            PermissionCheck(sales_org.manager_employee, "emp.edit", department_id=sales_org.sales.id),
        ]

        outcomes = await access.check_many(checks)

        assert outcomes[0].allowed
        assert isinstance(outcomes[1].error, InvalidInput)
        assert outcomes[1].decision is None
        assert outcomes[2].allowed

    async def test_malformed_items_fail_individually(self, access, sales_org):
        checks = [
            PermissionCheck(sales_org.rep_employee, None),
            PermissionCheck(sales_org.rep_employee, 5),
            PermissionCheck(True, "users.read"),
            PermissionCheck(sales_org.rep_employee, "users.read"),
        ]

        outcomes = await access.check_many(checks)

        assert [type(o.error) for o in outcomes[:3]] == [InvalidInput] * 3
        assert outcomes[3].allowed

    async def test_empty_batch(self, access):
        assert await access.check_many([]) == []


# ---------------------------------------------------------------------------
# Worker pool
# ---------------------------------------------------------------------------


class TestWorkerPool:
    async def test_concurrency_is_bounded_by_max_workers(self):
        resolver = RecordingResolver()
        outcomes = await BulkResolver(resolver, max_workers=3).resolve_many(_checks(10))

        assert len(outcomes) == 10
        assert resolver.calls == 10
        assert resolver.peak == 3

    async def test_small_batch_uses_fewer_workers(self):
        resolver = RecordingResolver()
        await BulkResolver(resolver, max_workers=10).resolve_many(_checks(2))

        assert resolver.peak == 2

    async def test_results_follow_input_index(self):
        outcomes = await BulkResolver(RecordingResolver(delay=0), max_workers=4).resolve_many(_checks(9))

        assert [o.check.employee_id for o in outcomes] == list(range(1, 10))
        assert [o.allowed for o in outcomes] == [i % 2 == 1 for i in range(1, 10)]

    async def test_store_failure_is_captured_per_item(self):
        resolver = RecordingResolver(fail_on="broken")
        checks = [PermissionCheck(1, "users.read"), PermissionCheck(2, "broken"), PermissionCheck(3, "users.read")]

        outcomes = await BulkResolver(resolver, max_workers=2).resolve_many(checks)

        assert isinstance(outcomes[1].error, StoreUnavailable)
        assert [o.decision for o in (outcomes[0], outcomes[2])] == [Decision.ALLOW, Decision.ALLOW]

    async def test_unexpected_error_is_captured_and_batch_completes(self):
        resolver = RecordingResolver(crash_on="crash")
        checks = [
            PermissionCheck(1, "users.read"),
            PermissionCheck(2, "crash"),
            PermissionCheck(3, "users.read"),
            PermissionCheck(5, "users.read"),
        ]

        outcomes = await BulkResolver(resolver, max_workers=2).resolve_many(checks)

        assert len(outcomes) == 4
        assert isinstance(outcomes[1].error, RuntimeError)
        assert outcomes[1].decision is None
        assert [o.decision for o in outcomes if o.error is None] == [Decision.ALLOW] * 3
        assert resolver.calls == 4
        assert resolver.active == 0

    def test_zero_workers_is_invalid(self):
        with pytest.raises(InvalidInput):
            BulkResolver(RecordingResolver(), max_workers=0)
