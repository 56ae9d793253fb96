"""
SLA Application Services
=========================

Policy access and the periodic breach monitor.

The monitor sweeps active issues, reports clocks that have newly breached
since the previous sweep, and optionally escalates resolution breaches one
priority step on behalf of the built-in system principal.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from grievance.access.domain import SYSTEM_PRINCIPAL
from grievance.config import AuditAction, MAX_PRIORITY, PRIORITY_ORDER, Role, SLAType
from grievance.core import ApplicationException
from grievance.core.clock import Clock, utc_now
from grievance.issues.application.audit import AuditTrail
from grievance.issues.application.escalation import EscalationManager
from grievance.issues.application.repositories import IIssueRepository
from grievance.issues.domain import Issue
from grievance.shared.infrastructure.logging import get_logger, log_latency
from grievance.shared.infrastructure.notifications import (
    NotificationDispatcher,
    NotificationMessage,
    NotificationTarget,
)
from grievance.sla.domain import SLAClock, SLAPolicy

logger = get_logger(__name__)


class ISLAPolicyProvider(ABC):
    """Interface for SLA policy access."""

    @abstractmethod
    def get_policy(self) -> SLAPolicy:
        """Get the current SLA policy."""


class StaticSLAPolicyProvider(ISLAPolicyProvider):
    """Serves a fixed policy. Used by tests and when no policy file is configured."""

    def __init__(self, policy: Optional[SLAPolicy] = None):
        self._policy = policy or SLAPolicy()

    def get_policy(self) -> SLAPolicy:
        return self._policy


class SLAMonitorService:
    """
    Background breach detection.

    Run periodically. Each clock is reported once per breach: the monitor
    remembers ``(issue_id, sla_type)`` pairs it has already handled and
    forgets them once the issue leaves the active set.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        sla_clock: SLAClock,
        audit_trail: Optional[AuditTrail] = None,
        escalation_manager: Optional[EscalationManager] = None,
        notifier: Optional[NotificationDispatcher] = None,
        auto_escalate: bool = False,
        clock: Clock = utc_now
    ):
        self._issues = issue_repository
        self._sla_clock = sla_clock
        self._audit = audit_trail
        self._escalation = escalation_manager
        self._notifier = notifier
        self._auto_escalate = auto_escalate
        self._clock = clock
        self._reported: Set[Tuple[str, SLAType]] = set()
        self.last_run_at = None
        self.last_summary: Dict[str, Any] = {}

    async def sweep(self) -> Dict[str, Any]:
        """
        Evaluate every active issue once.

        Returns:
            Summary counts for the sweep
        """
        now = self._clock()
        summary = {
            "issues_evaluated": 0,
            "breaches_detected": 0,
            "notifications_sent": 0,
            "escalated": 0,
            "errors": 0,
        }

        with log_latency(logger, "sla_sweep"):
            issues = await self._issues.list_active()
            active_ids = {issue.id for issue in issues}
            self._reported = {key for key in self._reported if key[0] in active_ids}

            for issue in issues:
                summary["issues_evaluated"] += 1
                try:
                    await self._evaluate(issue, now, summary)
                except ApplicationException as e:
                    summary["errors"] += 1
                    logger.warning(
                        "SLA evaluation failed for issue",
                        extra={"issue_id": issue.id, "error_code": e.error_code, "error": e.message}
                    )
                except SQLAlchemyError as e:
                    summary["errors"] += 1
                    logger.error(
                        "SLA evaluation hit a database error",
                        extra={"issue_id": issue.id, "error": str(e)}
                    )

        self.last_run_at = now
        self.last_summary = summary
        logger.info("SLA sweep completed", extra=summary)
        return summary

    async def _evaluate(self, issue: Issue, now, summary: Dict[str, Any]) -> None:
        flags = self._sla_clock.breach_flags(issue, now)
        new_breaches = [
            sla_type for sla_type in flags.breached_types()
            if (issue.id, sla_type) not in self._reported
        ]
        if not new_breaches:
            return

        summary["breaches_detected"] += len(new_breaches)
        for sla_type in new_breaches:
            self._reported.add((issue.id, sla_type))
            logger.warning(
                "SLA breached",
                extra={
                    "issue_id": issue.id,
                    "sla_type": sla_type.value,
                    "priority": issue.priority.value,
                    "agent_id": issue.assigned_to,
                }
            )
            if self._audit is not None:
                await self._audit.record(
                    issue.id, SYSTEM_PRINCIPAL.id, AuditAction.SLA_BREACHED, issue, issue,
                    {"sla_type": sla_type.value, "priority": issue.priority.value}
                )

        if self._notify(issue, new_breaches):
            summary["notifications_sent"] += 1

        if (
            self._auto_escalate
            and self._escalation is not None
            and SLAType.RESOLUTION in new_breaches
            and issue.priority != MAX_PRIORITY
        ):
            next_priority = PRIORITY_ORDER[issue.priority.rank + 1]
            await self._escalation.escalate(
                issue.id,
                next_priority,
                "Resolution SLA breached",
                SYSTEM_PRINCIPAL,
            )
            summary["escalated"] += 1

    def _notify(self, issue: Issue, breaches) -> bool:
        if self._notifier is None:
            return False
        if issue.assigned_to:
            target = NotificationTarget.principal(issue.assigned_to)
        else:
            target = NotificationTarget.for_role(Role.MANAGER)
        clocks = ", ".join(sla_type.value for sla_type in breaches)
        self._notifier.dispatch(
            target,
            NotificationMessage(
                title="SLA breached",
                body=f"Issue {issue.id} ({issue.priority.value}) breached: {clocks}",
                issue_id=issue.id,
                kind="sla_breach",
            ),
        )
        return True
