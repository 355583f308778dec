"""
Audit log model.

Rows are append-only: the engine never updates or deletes them, including
when the role, permission or department they mention is soft-deleted.
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.core.database.base import Base


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.new())


class AuditLog(Base):
    """
    One decision or mutation.

    Tracks who did what to which target, and when. ULID keys sort by
    creation time.
    """
    __tablename__ = "audit_logs"
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Actor (0 is the system)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    
    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, actor_id={self.actor_id}, action={self.action}, target={self.target_type}:{self.target_id})>"
