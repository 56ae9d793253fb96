"""
Issue Application Services
==========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

``IssueService`` covers the issue record itself: creation, reads, status
changes and reopening, comments, the SLA view and the audit listing.
Assignment and escalation live in their own services.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import uuid4

from grievance.access.domain import (
    CommentChannel,
    CommentVisibilityGuard,
    PermissionModel,
    Principal,
)
from grievance.config import AuditAction, IssueStatus, Permission, Priority, Role
from grievance.core import PermissionDeniedException, ValidationException
from grievance.core.clock import Clock, utc_now
from grievance.issues.application.audit import AuditTrail
from grievance.issues.application.base import IssueServiceBase
from grievance.issues.application.repositories import (
    IAgentRepository,
    ICommentRepository,
    IIssueRepository,
)
from grievance.issues.domain import AuditLogEntry, Comment, Issue, IssueStateMachine
from grievance.shared.infrastructure.logging import get_logger
from grievance.shared.infrastructure.notifications import NotificationDispatcher
from grievance.sla.domain import BreachFlags, SLAClock, SLAStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommentListing:
    """
    Both channels of an issue, never merged.

    A channel the principal may not read is ``None`` with its ``*_restricted``
    flag set, which is different from an empty list.
    """
    issue_id: str
    external: Optional[List[Comment]]
    internal: Optional[List[Comment]]
    issue: Optional[Issue] = None

    @property
    def external_restricted(self) -> bool:
        return self.external is None

    @property
    def internal_restricted(self) -> bool:
        return self.internal is None


@dataclass(frozen=True)
class PostedComment:
    """A stored comment and the issue as it stands after the write."""
    comment: Comment
    issue: Issue


class IssueService(IssueServiceBase):
    """Issue records, status lifecycle and comments."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        comment_repository: ICommentRepository,
        agent_repository: IAgentRepository,
        audit_trail: AuditTrail,
        state_machine: IssueStateMachine,
        visibility_guard: CommentVisibilityGuard,
        permission_model: PermissionModel,
        sla_clock: SLAClock,
        notifier: Optional[NotificationDispatcher] = None,
        max_conflict_retries: int = 3,
        clock: Clock = utc_now
    ):
        super().__init__(issue_repository, notifier, max_conflict_retries, clock)
        self._comments = comment_repository
        self._agents = agent_repository
        self._audit = audit_trail
        self._state_machine = state_machine
        self._guard = visibility_guard
        self._permissions = permission_model
        self._sla_clock = sla_clock

    # ========== Reads ==========

    def _require_visible(self, issue: Issue, actor: Principal) -> None:
        if issue.reporter_id == actor.id or issue.is_assignee(actor.id):
            return
        if self._permissions.has_permission(actor, Permission.MANAGE_ISSUES):
            return
        raise PermissionDeniedException(
            f"Issue {issue.id} is not visible to this principal",
            principal_id=actor.id,
            required=Permission.MANAGE_ISSUES.value,
        )

    async def get_issue(self, issue_id: str, actor: Principal) -> Issue:
        issue = await self._load(issue_id)
        self._require_visible(issue, actor)
        return issue

    def breach_flags(self, issue: Issue) -> BreachFlags:
        return self._sla_clock.breach_flags(issue, self._clock())

    async def sla_status(self, issue_id: str, actor: Principal) -> SLAStatus:
        issue = await self.get_issue(issue_id, actor)
        return self._sla_clock.status(issue, self._clock())

    async def audit_log(
        self,
        issue_id: str,
        actor: Principal,
        offset: int = 0,
        limit: int = 100
    ) -> List[AuditLogEntry]:
        self._permissions.require(actor, Permission.MANAGE_ISSUES, "read the audit trail")
        await self._load(issue_id)
        return await self._audit.list_for(issue_id, offset=offset, limit=limit)

    # ========== Creation ==========

    async def create_issue(
        self,
        reporter: Principal,
        type_id: str,
        description: str,
        priority: Priority = Priority.MEDIUM,
        sub_type_id: Optional[str] = None
    ) -> Issue:
        type_id = (type_id or "").strip()
        description = (description or "").strip()
        if not type_id:
            raise ValidationException("Issue type is required", {"field": "type_id"})
        if not description:
            raise ValidationException("Issue description is required", {"field": "description"})

        now = self._clock()
        issue = Issue(
            id=str(uuid4()),
            type_id=type_id,
            sub_type_id=sub_type_id,
            description=description,
            priority=Priority(priority),
            status=IssueStatus.OPEN,
            reporter_id=reporter.id,
            created_at=now,
            updated_at=now,
        )
        issue = await self._issues.add(issue)

        await self._audit.record(issue.id, reporter.id, AuditAction.CREATED, None, issue)
        self._notify_role(
            Role.MANAGER,
            "New issue",
            f"Issue {issue.id} ({issue.priority.value}) was filed",
            issue.id,
        )
        logger.info(
            "Issue created",
            extra={"issue_id": issue.id, "actor_id": reporter.id, "priority": issue.priority.value}
        )
        return issue

    # ========== Status lifecycle ==========

    async def transition(
        self,
        issue_id: str,
        new_status: IssueStatus,
        actor: Principal,
        resolution_note: Optional[str] = None
    ) -> Issue:
        new_status = IssueStatus(new_status)

        async def compute(issue: Issue) -> Issue:
            now = self._clock()
            updated = self._state_machine.transition(issue, new_status, actor, now, resolution_note)
            return self._freeze_breaches(issue, updated, now)

        before, after = await self._mutate(issue_id, compute)
        await self._after_status_change(before, after, actor, {"resolution_note": after.resolution_note})
        return after

    async def reopen(self, issue_id: str, actor: Principal, reason: str) -> Issue:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("A reopen reason is required", {"issue_id": issue_id, "field": "reason"})

        async def compute(issue: Issue) -> Issue:
            return self._state_machine.reopen(issue, actor, self._clock())

        before, after = await self._mutate(issue_id, compute)
        await self._after_status_change(before, after, actor, {"reason": reason})
        return after

    def _freeze_breaches(self, before: Issue, after: Issue, now) -> Issue:
        """Store the breach flags as facts when an issue first enters resolved/closed."""
        if after.is_terminal and not before.is_terminal:
            return after.evolve(**self._sla_clock.freeze(after, now))
        return after

    async def _after_status_change(self, before: Issue, after: Issue, actor: Principal, details: dict) -> None:
        reopened = before.is_terminal and after.status == IssueStatus.OPEN
        await self._sync_workload(before, after)

        await self._audit.record(
            after.id,
            actor.id,
            AuditAction.REOPENED if reopened else AuditAction.STATUS_CHANGED,
            before,
            after,
            {"from_status": before.status.value, "to_status": after.status.value, **details},
        )

        if actor.id != after.reporter_id:
            self._notify_principal(
                after.reporter_id,
                "Issue status changed",
                f"Issue {after.id} is now {after.status.value}",
                after.id,
                kind="status",
            )
        if reopened and after.assigned_to and actor.id != after.assigned_to:
            self._notify_principal(
                after.assigned_to,
                "Issue reopened",
                f"Issue {after.id} was reopened",
                after.id,
                kind="status",
            )
        logger.info(
            "Issue status changed",
            extra={
                "issue_id": after.id,
                "actor_id": actor.id,
                "from_status": before.status.value,
                "to_status": after.status.value,
            }
        )

    async def _sync_workload(self, before: Issue, after: Issue) -> None:
        """Release the assignee's load on resolve/close, take it back on reopen."""
        if after.assigned_to is None:
            return
        try:
            if before.is_active and after.is_terminal:
                await self._agents.decrement_load(after.assigned_to)
            elif before.is_terminal and after.is_active:
                await self._agents.force_increment_load(after.assigned_to)
        except Exception as e:
            # The status change stands; recompute_loads repairs the counter.
            logger.error(
                "Workload bookkeeping failed",
                extra={"issue_id": after.id, "agent_id": after.assigned_to, "error": str(e)}
            )

    # ========== Comments ==========

    async def add_comment(
        self,
        issue_id: str,
        actor: Principal,
        content: str,
        internal: bool = False
    ) -> PostedComment:
        content = (content or "").strip()
        if not content:
            raise ValidationException("Comment content cannot be empty", {"field": "content"})

        issue = await self._load(issue_id)
        if issue.is_terminal:
            raise ValidationException(
                f"Issue {issue.id} is {issue.status.value}; reopen it to comment",
                {"issue_id": issue.id, "status": issue.status.value}
            )
        if internal:
            allowed = self._guard.can_write(actor, issue, internal=True)
        else:
            allowed = self._guard.can_post_external(actor, issue)
        if not allowed:
            raise PermissionDeniedException(
                f"Principal may not write {'internal' if internal else 'external'} comments on issue {issue.id}",
                principal_id=actor.id,
                required=Permission.MANAGE_ISSUES.value,
            )

        # The issue update must commit before the comment is stored, so a
        # ConflictException leaves nothing behind.
        if issue.is_assignee(actor.id):
            issue = await self._record_assignee_activity(issue.id, actor)

        comment = await self._comments.append(Comment(
            id=str(uuid4()),
            issue_id=issue.id,
            author_id=actor.id,
            content=content,
            internal=internal,
            created_at=self._clock(),
        ))

        await self._audit.record(
            issue.id,
            actor.id,
            AuditAction.INTERNAL_COMMENT_ADDED if internal else AuditAction.COMMENT_ADDED,
            details={"comment_id": comment.id},
        )
        self._notify_comment(issue, actor, comment)
        logger.info(
            "Comment added",
            extra={"issue_id": issue.id, "actor_id": actor.id, "internal": internal}
        )
        return PostedComment(comment=comment, issue=issue)

    async def _record_assignee_activity(self, issue_id: str, actor: Principal) -> Issue:
        async def compute(issue: Issue) -> Issue:
            return self._state_machine.record_assignee_activity(issue, actor, self._clock())

        before, after = await self._mutate(issue_id, compute)
        if before.status != after.status:
            await self._audit.record(
                after.id, actor.id, AuditAction.STATUS_CHANGED, before, after,
                {"from_status": before.status.value, "to_status": after.status.value, "trigger": "assignee_activity"}
            )
        return after

    def _notify_comment(self, issue: Issue, actor: Principal, comment: Comment) -> None:
        body = f"New comment on issue {issue.id}"
        if comment.internal:
            if issue.assigned_to and issue.assigned_to != actor.id:
                self._notify_principal(issue.assigned_to, "Internal note", body, issue.id, kind="comment")
            return
        if actor.id == issue.reporter_id:
            if issue.assigned_to:
                self._notify_principal(issue.assigned_to, "Reporter replied", body, issue.id, kind="comment")
            else:
                self._notify_role(Role.MANAGER, "Reporter replied", body, issue.id, kind="comment")
        else:
            self._notify_principal(issue.reporter_id, "New reply", body, issue.id, kind="comment")

    async def list_comments(self, issue_id: str, actor: Principal) -> CommentListing:
        issue = await self._load(issue_id)
        external_access = self._guard.channel_access(actor, issue, CommentChannel.EXTERNAL)
        internal_access = self._guard.channel_access(actor, issue, CommentChannel.INTERNAL)

        external = None
        if external_access.can_view:
            external = await self._comments.list_for_issue(issue.id, internal=False)
        internal = None
        if internal_access.can_view:
            internal = await self._comments.list_for_issue(issue.id, internal=True)

        return CommentListing(
            issue_id=issue.id,
            external=external,
            internal=internal,
            issue=issue if external_access.can_view else None,
        )
