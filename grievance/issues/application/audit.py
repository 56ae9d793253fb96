"""
Audit Trail
===========

Append-only record of every mutation, for compliance and activity feeds.

Appends never fail the caller's operation: a storage error is logged as an
``AuditWriteFailure`` and dropped.
"""

from typing import Any, Dict, List, Optional
from uuid import uuid4

from grievance.config import AuditAction
from grievance.core import AuditWriteFailure
from grievance.core.clock import Clock, utc_now
from grievance.issues.application.repositories import IAuditRepository
from grievance.issues.domain import AuditLogEntry, Issue
from grievance.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class AuditTrail:
    """Writes and lists audit entries."""

    def __init__(self, repository: IAuditRepository, clock: Clock = utc_now):
        self._repository = repository
        self._clock = clock

    async def append(self, entry: AuditLogEntry) -> Optional[AuditLogEntry]:
        try:
            return await self._repository.append(entry)
        except Exception as e:
            failure = AuditWriteFailure(
                "Failed to write audit entry",
                {"issue_id": entry.issue_id, "action": entry.action.value, "error": str(e)}
            )
            logger.error(
                failure.message,
                extra={"error_code": failure.error_code, **failure.details}
            )
            return None

    async def record(
        self,
        issue_id: str,
        actor_id: str,
        action: AuditAction,
        before: Optional[Issue] = None,
        after: Optional[Issue] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[AuditLogEntry]:
        """Build an entry from before/after issue states and append it."""
        entry = AuditLogEntry(
            id=str(uuid4()),
            issue_id=issue_id,
            actor_id=actor_id,
            action=action,
            created_at=self._clock(),
            before=before.audit_view() if before else {},
            after=after.audit_view() if after else {},
            details=details or {},
        )
        return await self.append(entry)

    async def list_for(self, issue_id: str, offset: int = 0, limit: int = 100) -> List[AuditLogEntry]:
        return await self._repository.list_for_issue(issue_id, offset=offset, limit=limit)
