"""
Assignment Engine
=================

Routes issues to agents, manually or by workload.

Agent load changes are single atomic repository updates: auto-assign takes
a unit with a capacity-checked increment and moves on to the next candidate
when that fails, so two concurrent auto-assigns can never push the same
agent past its cap. If the issue save then loses the version race, the unit
is handed back before the whole operation is retried.
"""

from typing import Dict, Optional, Tuple

from grievance.access.domain import PermissionModel, Principal
from grievance.config import AuditAction, Permission
from grievance.core import (
    NoEligibleAgentException,
    ResourceNotFoundException,
    ValidationException,
)
from grievance.core.clock import Clock, utc_now
from grievance.issues.application.audit import AuditTrail
from grievance.issues.application.base import IssueServiceBase, run_optimistic
from grievance.issues.application.repositories import IAgentRepository, IIssueRepository
from grievance.issues.domain import AgentWorkloadSnapshot, AssignmentPolicy, Issue
from grievance.shared.infrastructure.logging import get_logger
from grievance.shared.infrastructure.notifications import NotificationDispatcher

logger = get_logger(__name__)


class AssignmentEngine(IssueServiceBase):
    """Manual assignment, auto-assignment and unassignment."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        agent_repository: IAgentRepository,
        audit_trail: AuditTrail,
        permission_model: PermissionModel,
        notifier: Optional[NotificationDispatcher] = None,
        max_conflict_retries: int = 3,
        clock: Clock = utc_now
    ):
        super().__init__(issue_repository, notifier, max_conflict_retries, clock)
        self._agents = agent_repository
        self._audit = audit_trail
        self._permissions = permission_model
        self._policy = AssignmentPolicy(permission_model)

    @property
    def policy(self) -> AssignmentPolicy:
        return self._policy

    @staticmethod
    def _require_assignable(issue: Issue) -> None:
        if not issue.is_active:
            raise ValidationException(
                f"Issue {issue.id} is {issue.status.value} and cannot be assigned",
                {"issue_id": issue.id, "status": issue.status.value}
            )

    async def _commit(self, issue: Issue, agent_id: str) -> Issue:
        """Save the new assignee; hand the agent's load unit back if the save fails."""
        now = self._clock()
        updated = issue.evolve(
            assigned_to=agent_id,
            assigned_at=now,
            assignee_responded_at=None,
            updated_at=now,
        )
        try:
            return await self._issues.save(updated, expected_version=issue.version)
        except Exception:
            await self._agents.decrement_load(agent_id)
            raise

    async def assign(self, issue_id: str, agent_id: str, actor: Principal) -> Issue:
        """
        Assign an issue to a named agent.

        The agent must be dashboard-capable, available and cover the issue
        priority. The capacity cap applies to auto-assignment only.
        """
        self._permissions.require(actor, Permission.MANAGE_ISSUES, "assign issues")

        async def attempt() -> Tuple[Issue, Issue, Dict[str, int]]:
            issue = await self._load(issue_id)
            self._require_assignable(issue)

            agent = await self._agents.get(agent_id)
            if agent is None:
                raise ResourceNotFoundException("Agent", agent_id)
            reason = self._policy.ineligibility_reason(agent, issue.priority, check_capacity=False)
            if reason:
                raise ValidationException(
                    f"Agent {agent_id} cannot take issue {issue.id}: {reason}",
                    {"issue_id": issue.id, "agent_id": agent_id, "reason": reason}
                )
            if issue.assigned_to == agent.agent_id:
                return issue, issue, {}

            workload = {agent.agent_id: agent.current_load}
            await self._agents.force_increment_load(agent.agent_id)
            return issue, await self._commit(issue, agent.agent_id), workload

        before, after, workload = await run_optimistic(issue_id, self._max_attempts, attempt)
        if after is not before:
            await self._after_assignment(before, after, actor, "manual", workload)
        return after

    async def auto_assign(self, issue_id: str, actor: Principal) -> Issue:
        """
        Assign an issue to the least-loaded eligible agent.

        Leaves the issue as is when its current assignee is still eligible.

        Raises:
            NoEligibleAgentException: nobody can take the issue right now
        """
        self._permissions.require(actor, Permission.MANAGE_ISSUES, "assign issues")

        async def attempt() -> Tuple[Issue, Issue, Dict[str, int]]:
            issue = await self._load(issue_id)
            self._require_assignable(issue)

            agents = await self._agents.list_all()
            if issue.assigned_to is not None:
                current = next((a for a in agents if a.agent_id == issue.assigned_to), None)
                if current is not None and self._policy.ineligibility_reason(
                    current, issue.priority, check_capacity=False
                ) is None:
                    return issue, issue, {}

            exclude = [issue.assigned_to] if issue.assigned_to else []
            candidates = self._policy.rank(agents, issue.priority, exclude=exclude)
            workload = {agent.agent_id: agent.current_load for agent in candidates}

            for agent in candidates:
                if await self._agents.try_increment_load(agent.agent_id):
                    return issue, await self._commit(issue, agent.agent_id), workload
                logger.info(
                    "Candidate agent filled up, trying next",
                    extra={"issue_id": issue.id, "agent_id": agent.agent_id}
                )

            raise NoEligibleAgentException(
                issue.id,
                issue.priority.value,
                {"registered_agents": len(agents), "candidates": len(candidates)}
            )

        try:
            before, after, workload = await run_optimistic(issue_id, self._max_attempts, attempt)
        except NoEligibleAgentException as e:
            logger.info(
                "Auto-assignment found no eligible agent",
                extra={"issue_id": issue_id, "actor_id": actor.id, "error_code": e.error_code, **e.details}
            )
            raise

        if after is not before:
            await self._after_assignment(before, after, actor, "auto", workload)
        return after

    async def unassign(self, issue_id: str, actor: Principal) -> Issue:
        self._permissions.require(actor, Permission.MANAGE_ISSUES, "unassign issues")

        async def compute(issue: Issue) -> Issue:
            self._require_assignable(issue)
            if issue.assigned_to is None:
                return issue
            return issue.evolve(
                assigned_to=None,
                assigned_at=None,
                assignee_responded_at=None,
                updated_at=self._clock(),
            )

        before, after = await self._mutate(issue_id, compute)
        if after is before:
            return after

        await self._agents.decrement_load(before.assigned_to)
        await self._audit.record(
            after.id, actor.id, AuditAction.UNASSIGNED, before, after,
            {"previous_assignee": before.assigned_to}
        )
        self._notify_principal(
            before.assigned_to,
            "Issue unassigned",
            f"Issue {after.id} is no longer assigned to you",
            after.id,
        )
        logger.info(
            "Issue unassigned",
            extra={"issue_id": after.id, "actor_id": actor.id, "agent_id": before.assigned_to}
        )
        return after

    async def _after_assignment(
        self,
        before: Issue,
        after: Issue,
        actor: Principal,
        mode: str,
        workload: Dict[str, int]
    ) -> None:
        if before.assigned_to is not None:
            await self._agents.decrement_load(before.assigned_to)

        await self._audit.record(
            after.id, actor.id, AuditAction.ASSIGNED, before, after,
            {
                "mode": mode,
                "agent_id": after.assigned_to,
                "previous_assignee": before.assigned_to,
                "workload_at_decision": workload,
            }
        )
        self._notify_principal(
            after.assigned_to,
            "Issue assigned",
            f"Issue {after.id} ({after.priority.value}) has been assigned to you",
            after.id,
            kind="assignment",
        )
        if before.assigned_to is not None:
            self._notify_principal(
                before.assigned_to,
                "Issue reassigned",
                f"Issue {after.id} has been reassigned",
                after.id,
            )
        logger.info(
            "Issue assigned",
            extra={
                "issue_id": after.id,
                "actor_id": actor.id,
                "agent_id": after.assigned_to,
                "previous_assignee": before.assigned_to,
                "mode": mode,
            }
        )


class AgentDirectory:
    """Registration, profile changes and workload view of agents."""

    def __init__(
        self,
        agent_repository: IAgentRepository,
        issue_repository: IIssueRepository,
        permission_model: PermissionModel,
        default_capacity: int = 10,
        clock: Clock = utc_now
    ):
        self._agents = agent_repository
        self._issues = issue_repository
        self._permissions = permission_model
        self._policy = AssignmentPolicy(permission_model)
        self._default_capacity = default_capacity
        self._clock = clock

    async def register(self, actor: Principal, agent: AgentWorkloadSnapshot) -> AgentWorkloadSnapshot:
        self._permissions.require(actor, Permission.MANAGE_USERS, "register agents")
        if not self._policy.is_dashboard_capable(agent):
            raise ValidationException(
                f"Role {agent.role.value} cannot receive issues",
                {"agent_id": agent.agent_id, "role": agent.role.value}
            )
        if await self._agents.get(agent.agent_id) is not None:
            raise ValidationException(
                f"Agent {agent.agent_id} is already registered",
                {"agent_id": agent.agent_id}
            )
        stored = await self._agents.register(agent)
        logger.info(
            "Agent registered",
            extra={"agent_id": stored.agent_id, "actor_id": actor.id, "capacity": stored.capacity}
        )
        return stored

    def new_agent(self, agent_id: str, role, **profile) -> AgentWorkloadSnapshot:
        """Snapshot for a fresh registration with the configured defaults."""
        capacity = profile.pop("capacity", None) or self._default_capacity
        return AgentWorkloadSnapshot(
            agent_id=agent_id,
            role=role,
            registered_at=self._clock(),
            capacity=capacity,
            **profile,
        )

    async def update(
        self,
        actor: Principal,
        agent_id: str,
        is_available: Optional[bool] = None,
        priority_ceiling=None,
        capacity: Optional[int] = None
    ) -> AgentWorkloadSnapshot:
        self._permissions.require(actor, Permission.MANAGE_USERS, "change agents")
        if capacity is not None and capacity < 1:
            raise ValidationException("capacity must be at least 1", {"agent_id": agent_id})
        updated = await self._agents.update(
            agent_id,
            is_available=is_available,
            priority_ceiling=priority_ceiling,
            capacity=capacity,
        )
        if updated is None:
            raise ResourceNotFoundException("Agent", agent_id)
        logger.info(
            "Agent updated",
            extra={"agent_id": agent_id, "actor_id": actor.id, "is_available": updated.is_available}
        )
        return updated

    async def workloads(self, actor: Principal):
        self._permissions.require(actor, Permission.VIEW_DASHBOARD, "view agent workload")
        agents = await self._agents.list_all()
        return sorted(agents, key=AssignmentPolicy.sort_key)

    async def recompute(self) -> Dict[str, int]:
        """Rebuild every agent's load from the issues currently assigned."""
        counts = await self._issues.count_active_by_assignee()
        await self._agents.recompute_loads(counts)
        logger.info("Agent workloads recomputed", extra={"assigned_agents": len(counts)})
        return counts
