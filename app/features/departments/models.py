"""
Department model.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, SoftDeleteMixin, TimestampMixin


class Department(Base, TimestampMixin, SoftDeleteMixin):
    """
    A logical group of employees and roles (e.g. Sales, HR).

    Departments also act as the scope axis of scoped permission grants.
    """
    __tablename__ = "departments"
    
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name={self.name!r})>"
