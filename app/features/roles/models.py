"""
Role and employee-role assignment models.

Roles form a forest through parent_role_id: a role inherits every grant
attached to any of its ancestors.
"""
from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, SoftDeleteMixin, TimestampMixin


class Role(Base, TimestampMixin, SoftDeleteMixin):
    """
    Hierarchical position within a department.

    is_global is descriptive only. Whether a grant is unscoped is decided by
    the grant's own department/employee columns, never by this flag.
    """
    __tablename__ = "roles"
    
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id"),
        nullable=False,
        index=True
    )
    
    # For role inheritance
    parent_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("roles.id"),
        nullable=True,
        index=True
    )
    is_global: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, dept_id={self.department_id}, parent_id={self.parent_role_id})>"


class EmployeeRoleAssignment(Base, TimestampMixin, SoftDeleteMixin):
    """
    Maps an employee to a role.

    Employees live outside this service, so employee_id is a bare integer.
    Revoking soft-deletes the row and assigning again revives it, so the
    (employee_id, role_id) pair stays unique.
    """
    __tablename__ = "employee_roles"
    
    employee_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    role_id: Mapped[int] = mapped_column(
        ForeignKey("roles.id"),
        primary_key=True,
        autoincrement=False,
        index=True
    )
    
    def __repr__(self) -> str:
        return f"<EmployeeRoleAssignment(employee_id={self.employee_id}, role_id={self.role_id})>"
