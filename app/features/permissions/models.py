"""
Permission and scoped grant models.

A ScopedPermissionGrant attaches a permission to a role, optionally
narrowed to one department and/or one target employee:

- department_id NULL: applies whatever department is being checked
- employee_id NULL: applies whatever employee is being acted on
- both NULL: a blanket grant
"""
from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, SoftDeleteMixin, TimestampMixin


class Permission(Base, TimestampMixin, SoftDeleteMixin):
    """
    A named access action, e.g. "users.read" or "emp.edit".
    
    is_global is a descriptive hint kept for administrators; resolution
    ignores it.
    """
    __tablename__ = "permissions"
    
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    is_global: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r})>"


class ScopedPermissionGrant(Base, TimestampMixin, SoftDeleteMixin):
    """Grants a permission to a role with optional scoping."""
    __tablename__ = "scoped_permissions"
    
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"), nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(ForeignKey("permissions.id"), nullable=False, index=True)
    
    # Optional department scope
    department_id: Mapped[int | None] = mapped_column(
        ForeignKey("departments.id"),
        nullable=True,
        index=True
    )
    
    # Optional target employee scope
    employee_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    
    @property
    def is_blanket(self) -> bool:
        return self.department_id is None and self.employee_id is None
    
    def __repr__(self) -> str:
        return (
            f"<ScopedPermissionGrant(id={self.id}, role_id={self.role_id}, permission_id={self.permission_id}, "
            f"dept_id={self.department_id}, employee_id={self.employee_id})>"
        )
