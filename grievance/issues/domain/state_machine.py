"""
Issue State Machine
===================

Owns every status change of an issue and the reopen window.

Allowed edges::

    open        -> in_progress, resolved
    in_progress -> resolved, closed
    escalated   -> in_progress, closed
    resolved    -> closed, open (reopen)
    closed      -> open (reopen)

``escalated`` is entered only through ``mark_escalated`` (from any active
status) and leaves back to ``in_progress`` as soon as the assignee acts.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from grievance.access.domain import PermissionModel, Principal
from grievance.config import (
    IssueStatus, Permission, Priority,
    ACTIVE_STATUSES, TERMINAL_STATUSES,
)
from grievance.core import (
    InvalidTransitionException,
    PermissionDeniedException,
    ReopenWindowExpiredException,
    ValidationException,
)
from grievance.issues.domain.entities import Issue


ALLOWED_TRANSITIONS: Dict[IssueStatus, FrozenSet[IssueStatus]] = {
    IssueStatus.OPEN: frozenset({IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED}),
    IssueStatus.IN_PROGRESS: frozenset({IssueStatus.RESOLVED, IssueStatus.CLOSED}),
    IssueStatus.ESCALATED: frozenset({IssueStatus.IN_PROGRESS, IssueStatus.CLOSED}),
    IssueStatus.RESOLVED: frozenset({IssueStatus.CLOSED, IssueStatus.OPEN}),
    IssueStatus.CLOSED: frozenset({IssueStatus.OPEN}),
}

NOTE_REQUIRED_STATUSES = TERMINAL_STATUSES


class IssueStateMachine:
    """
    Computes the next state of an issue for a requested status change.

    Methods are pure: they take the current ``Issue`` and return a new one,
    raising a specific exception when the change is refused.
    """

    def __init__(self, permission_model: PermissionModel, reopen_window: timedelta):
        self._permissions = permission_model
        self._reopen_window = reopen_window

    @property
    def reopen_window(self) -> timedelta:
        return self._reopen_window

    @staticmethod
    def can_transition(from_status: IssueStatus, to_status: IssueStatus) -> bool:
        return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())

    def _require_actor(self, issue: Issue, actor: Principal) -> None:
        if self._permissions.has_permission(actor, Permission.MANAGE_ISSUES):
            return
        if issue.is_assignee(actor.id):
            return
        raise PermissionDeniedException(
            f"Only the assignee or an issue manager may change issue {issue.id}",
            principal_id=actor.id,
            required=Permission.MANAGE_ISSUES.value,
        )

    def transition(
        self,
        issue: Issue,
        new_status: IssueStatus,
        actor: Principal,
        now: datetime,
        resolution_note: Optional[str] = None
    ) -> Issue:
        """Apply a status change requested through the status endpoint."""
        if new_status == IssueStatus.ESCALATED:
            raise InvalidTransitionException(
                issue.id, issue.status.value, new_status.value,
                "escalation goes through the escalate operation"
            )
        if new_status == IssueStatus.OPEN and issue.status in TERMINAL_STATUSES:
            return self.reopen(issue, actor, now)
        if not self.can_transition(issue.status, new_status):
            raise InvalidTransitionException(issue.id, issue.status.value, new_status.value)

        self._require_actor(issue, actor)

        note = (resolution_note or "").strip()
        if new_status in NOTE_REQUIRED_STATUSES and not note:
            raise ValidationException(
                f"A resolution note is required to mark an issue {new_status.value}",
                {"issue_id": issue.id, "field": "resolution_note"}
            )

        changes = {"status": new_status, "updated_at": now}

        if issue.first_response_at is None and new_status != IssueStatus.OPEN:
            changes["first_response_at"] = now

        if issue.is_assignee(actor.id) and issue.assignee_responded_at is None:
            changes["assignee_responded_at"] = now

        if new_status == IssueStatus.RESOLVED:
            changes["resolved_at"] = now
            changes["resolution_note"] = note
            changes["reopenable_until"] = now + self._reopen_window
        elif new_status == IssueStatus.CLOSED:
            # Closing straight from active work resolves at the same instant.
            if issue.resolved_at is None:
                changes["resolved_at"] = now
            changes["closed_at"] = now
            changes["resolution_note"] = note
            changes["reopenable_until"] = now + self._reopen_window

        return issue.evolve(**changes)

    def reopen(self, issue: Issue, actor: Principal, now: datetime) -> Issue:
        """
        Revert a resolved or closed issue to open within the reopen window.

        The reporter may reopen their own issue in addition to the assignee
        and issue managers.
        """
        if issue.status not in TERMINAL_STATUSES:
            raise InvalidTransitionException(
                issue.id, issue.status.value, IssueStatus.OPEN.value,
                "only resolved or closed issues can be reopened"
            )
        if issue.reporter_id != actor.id:
            self._require_actor(issue, actor)

        if issue.reopenable_until is None or now > issue.reopenable_until:
            raise ReopenWindowExpiredException(issue.id, issue.reopenable_until)

        return issue.evolve(
            status=IssueStatus.OPEN,
            updated_at=now,
            previously_closed_at=issue.closed_at or issue.resolved_at,
            resolved_at=None,
            closed_at=None,
            reopenable_until=None,
            resolution_note=None,
            reopen_count=issue.reopen_count + 1,
            sla_first_response_breached=None,
            sla_resolution_breached=None,
            sla_assignee_breached=None,
        )

    def mark_escalated(self, issue: Issue, new_priority: Priority, now: datetime) -> Issue:
        """Raise priority and enter ``escalated``. Authorization is the caller's job."""
        if issue.status not in ACTIVE_STATUSES:
            raise InvalidTransitionException(
                issue.id, issue.status.value, IssueStatus.ESCALATED.value,
                "resolved or closed issues cannot be escalated"
            )
        return issue.evolve(
            priority=new_priority,
            escalation_level=issue.escalation_level + 1,
            status=IssueStatus.ESCALATED,
            escalated_at=now,
            updated_at=now,
        )

    def record_assignee_activity(self, issue: Issue, actor: Principal, now: datetime) -> Issue:
        """
        Note that the assignee acted (e.g. commented).

        Latches ``assignee_responded_at`` and moves an escalated issue back to
        ``in_progress``. Returns the issue unchanged for anyone else.
        """
        if not issue.is_assignee(actor.id) or issue.is_terminal:
            return issue

        changes = {}
        if issue.assignee_responded_at is None:
            changes["assignee_responded_at"] = now
        if issue.status == IssueStatus.ESCALATED:
            changes["status"] = IssueStatus.IN_PROGRESS
            if issue.first_response_at is None:
                changes["first_response_at"] = now
        if not changes:
            return issue
        changes["updated_at"] = now
        return issue.evolve(**changes)
