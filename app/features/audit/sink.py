"""
Append-only audit sink.

Each record is written inline through its own session, so the entry exists
before the caller sees its result, and a failed audit write can never roll
back or fail the decision or mutation that triggered it.
"""
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core import config
from app.features.audit.models import AuditLog
from app.utils import get_logger


log = get_logger(__name__)


class AuditSink:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        enabled: bool = config.AUDIT_ENABLED,
    ):
        self._session_factory = session_factory
        self.enabled = enabled
        self.failed_writes = 0

    async def record(
        self,
        actor_id: int,
        action: str,
        target_type: str,
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Write one audit entry.

        Args:
            actor_id: Employee performing the action (0 for the system)
            action: Action performed (e.g. "check_permission", "assign_role")
            target_type: Kind of object acted on (e.g. "permission", "role")
            target_id: Id of that object, if there is one
            details: Free-form JSON context

        Returns:
            The stored AuditLog, or None if auditing is disabled or the write failed
        """
        if not self.enabled:
            return None
        
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
        try:
            async with self._session_factory() as db:
                db.add(entry)
                await db.commit()
        except SQLAlchemyError as exc:
            self.failed_writes += 1
            log.warning(
                "Audit write failed: actor=%s action=%s target=%s:%s error=%s",
                actor_id, action, target_type, target_id, exc,
            )
            return None
        
        if action == "check_permission":
            log.debug(f"Audit: actor={actor_id} action={action} target={target_type}:{target_id}")
        else:
            log.info(f"Audit: actor={actor_id} action={action} target={target_type}:{target_id}")
        return entry
