"""
Escalation Manager
==================

Raises an issue's priority and escalation level, then re-routes it when the
current assignee is not cleared for the new priority.
"""

from typing import Optional

from grievance.access.domain import PermissionModel, Principal
from grievance.config import AuditAction, MAX_PRIORITY, Permission, Priority, Role
from grievance.core import (
    AlreadyMaxPriorityException,
    NoEligibleAgentException,
    ValidationException,
)
from grievance.core.clock import Clock, utc_now
from grievance.issues.application.assignment import AssignmentEngine
from grievance.issues.application.audit import AuditTrail
from grievance.issues.application.base import IssueServiceBase
from grievance.issues.application.repositories import IAgentRepository, IIssueRepository
from grievance.issues.domain import Issue, IssueStateMachine
from grievance.shared.infrastructure.logging import get_logger
from grievance.shared.infrastructure.notifications import NotificationDispatcher

logger = get_logger(__name__)


class EscalationManager(IssueServiceBase):
    """Priority escalation with automatic re-routing."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        agent_repository: IAgentRepository,
        state_machine: IssueStateMachine,
        assignment_engine: AssignmentEngine,
        audit_trail: AuditTrail,
        permission_model: PermissionModel,
        notifier: Optional[NotificationDispatcher] = None,
        max_conflict_retries: int = 3,
        clock: Clock = utc_now
    ):
        super().__init__(issue_repository, notifier, max_conflict_retries, clock)
        self._agents = agent_repository
        self._state_machine = state_machine
        self._assignment = assignment_engine
        self._audit = audit_trail
        self._permissions = permission_model

    async def escalate(
        self,
        issue_id: str,
        new_priority: Priority,
        reason: str,
        actor: Principal
    ) -> Issue:
        """
        Escalate an issue to a strictly more severe priority.

        Raises:
            PermissionDeniedException: actor lacks manage:issues
            AlreadyMaxPriorityException: issue is already at the top priority
            ValidationException: empty reason or a priority that is not higher
            InvalidTransitionException: issue is resolved or closed
        """
        self._permissions.require(actor, Permission.MANAGE_ISSUES, "escalate issues")
        new_priority = Priority(new_priority)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("An escalation reason is required", {"issue_id": issue_id, "field": "reason"})

        async def compute(issue: Issue) -> Issue:
            if issue.priority == MAX_PRIORITY:
                raise AlreadyMaxPriorityException(issue.id, issue.priority.value)
            if new_priority.rank <= issue.priority.rank:
                raise ValidationException(
                    f"Escalation must raise priority above {issue.priority.value}",
                    {
                        "issue_id": issue.id,
                        "current_priority": issue.priority.value,
                        "requested_priority": new_priority.value,
                    }
                )
            return self._state_machine.mark_escalated(issue, new_priority, self._clock())

        before, after = await self._mutate(issue_id, compute)

        await self._audit.record(
            after.id, actor.id, AuditAction.ESCALATED, before, after,
            {
                "reason": reason,
                "from_priority": before.priority.value,
                "to_priority": after.priority.value,
                "escalation_level": after.escalation_level,
            }
        )
        logger.info(
            "Issue escalated",
            extra={
                "issue_id": after.id,
                "actor_id": actor.id,
                "from_priority": before.priority.value,
                "to_priority": after.priority.value,
                "escalation_level": after.escalation_level,
            }
        )

        after = await self._reroute_if_needed(after, actor)

        message = f"Issue {after.id} escalated to {after.priority.value}: {reason}"
        if after.assigned_to:
            self._notify_principal(after.assigned_to, "Issue escalated", message, after.id, kind="escalation")
        else:
            self._notify_role(Role.MANAGER, "Issue escalated", message, after.id, kind="escalation")
        return after

    async def _reroute_if_needed(self, issue: Issue, actor: Principal) -> Issue:
        if issue.assigned_to is None:
            return issue

        agent = await self._agents.get(issue.assigned_to)
        if agent is not None and agent.covers(issue.priority):
            return issue

        try:
            return await self._assignment.auto_assign(issue.id, actor)
        except NoEligibleAgentException as e:
            # The escalation stands; the issue stays with its current assignee.
            await self._audit.record(
                issue.id, actor.id, AuditAction.REROUTE_FAILED, issue, issue,
                {"error_code": e.error_code, **e.details}
            )
            logger.warning(
                "Escalated issue could not be re-routed",
                extra={"issue_id": issue.id, "agent_id": issue.assigned_to, "priority": issue.priority.value}
            )
            self._notify_role(
                Role.MANAGER,
                "Re-routing failed",
                f"No agent cleared for {issue.priority.value} is available for issue {issue.id}",
                issue.id,
                kind="escalation",
            )
            return await self._load(issue.id)
