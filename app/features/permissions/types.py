"""
Value types shared by the resolver, the decision cache and the bulk engine.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Decision(str, Enum):
    """Outcome of a check. A denial is a value, not an error."""
    ALLOW = "allow"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


@dataclass(frozen=True)
class PermissionCheck:
    """One (employee, permission, scope) question."""
    employee_id: int
    permission: str
    department_id: Optional[int] = None
    target_employee_id: Optional[int] = None


@dataclass(frozen=True)
class CheckOutcome:
    """Answer to one PermissionCheck inside a batch: a decision or the error that prevented one."""
    check: PermissionCheck
    decision: Optional[Decision] = None
    error: Optional[Exception] = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW
