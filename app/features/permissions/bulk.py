"""
Concurrent batch checks.

A fixed pool of worker tasks drains a shared queue of (index, check) items
and writes each outcome into the result slot of the same index. Results are
correlated by position only, so duplicate (employee, permission) pairs in
one batch each get their own answer.
"""
import asyncio
from typing import Protocol, Sequence

from app.core import config
from app.core.errors import InvalidInput, RBACError
from app.features.permissions.types import CheckOutcome, Decision, PermissionCheck
from app.utils import get_logger


log = get_logger(__name__)


class Resolver(Protocol):
    async def resolve(
        self,
        employee_id: int,
        permission_name: str,
        department_id: int | None = None,
        target_employee_id: int | None = None,
    ) -> Decision:
        ...


class BulkResolver:
    def __init__(self, resolver: Resolver, max_workers: int = config.BULK_MAX_WORKERS):
        if max_workers < 1:
            raise InvalidInput("max_workers must be at least 1")
        self._resolver = resolver
        self.max_workers = max_workers

    async def resolve_many(self, checks: Sequence[PermissionCheck]) -> list[CheckOutcome]:
        """
        Resolve every check and return one outcome per input, in input order.

        Blocks until all checks finish. An error raised by one check, RBACError
        or not, is stored on that check's outcome and does not stop the others.
        """
        if not checks:
            return []

        queue: asyncio.Queue[tuple[int, PermissionCheck]] = asyncio.Queue()
        for item in enumerate(checks):
            queue.put_nowait(item)

        results: list[CheckOutcome | None] = [None] * len(checks)
        worker_count = min(self.max_workers, len(checks))

        async def worker() -> None:
            while True:
                try:
                    index, check = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[index] = await self._run_one(check)
                queue.task_done()

        await asyncio.gather(*(worker() for _ in range(worker_count)))

        failed = sum(1 for outcome in results if outcome is not None and outcome.error is not None)
        log.debug(f"Bulk check: {len(checks)} checks, {worker_count} workers, {failed} failed")
        return results  # type: ignore[return-value]

    async def _run_one(self, check: PermissionCheck) -> CheckOutcome:
        try:
            decision = await self._resolver.resolve(
                check.employee_id,
                check.permission,
                check.department_id,
                check.target_employee_id,
            )
        except RBACError as exc:
            log.info(f"Bulk item failed: employee={check.employee_id} permission={check.permission} error={exc}")
            return CheckOutcome(check=check, error=exc)
        except Exception as exc:
            # One item must never end gather() for the others
            log.error(
                f"Unexpected error in bulk item: employee={check.employee_id} permission={check.permission}",
                exc_info=True,
            )
            return CheckOutcome(check=check, error=exc)
        return CheckOutcome(check=check, decision=decision)
