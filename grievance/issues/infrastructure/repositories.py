"""
Issues Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

Each call runs in its own short transaction. Concurrency control is pushed
into single statements:

- issue save is ``UPDATE ... WHERE id = :id AND version = :expected``
- agent load is ``UPDATE ... SET current_load = current_load + 1
  WHERE current_load < capacity AND is_available``
"""

from dataclasses import asdict
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grievance.config import (
    AuditAction, IssueStatus, Priority, Role, ACTIVE_STATUSES,
)
from grievance.core import RepositoryException, StaleVersionError
from grievance.issues.application.repositories import (
    IAgentRepository,
    IAuditRepository,
    ICommentRepository,
    IIssueRepository,
)
from grievance.issues.domain import AgentWorkloadSnapshot, AuditLogEntry, Comment, Issue
from grievance.issues.infrastructure.models import (
    AgentModel,
    AuditLogModel,
    CommentModel,
    IssueModel,
)

_ACTIVE_VALUES = [status.value for status in ACTIVE_STATUSES]

_ENUM_FIELDS = ("priority", "status")


def _issue_columns(issue: Issue) -> dict:
    values = asdict(issue)
    for name in _ENUM_FIELDS:
        values[name] = values[name].value
    return values


def _issue_from_model(model: IssueModel) -> Issue:
    return Issue(
        id=model.id,
        type_id=model.type_id,
        sub_type_id=model.sub_type_id,
        description=model.description,
        priority=Priority(model.priority),
        status=IssueStatus(model.status),
        reporter_id=model.reporter_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        assigned_to=model.assigned_to,
        assigned_at=model.assigned_at,
        assignee_responded_at=model.assignee_responded_at,
        escalation_level=model.escalation_level,
        escalated_at=model.escalated_at,
        first_response_at=model.first_response_at,
        resolved_at=model.resolved_at,
        closed_at=model.closed_at,
        reopenable_until=model.reopenable_until,
        previously_closed_at=model.previously_closed_at,
        reopen_count=model.reopen_count,
        resolution_note=model.resolution_note,
        sla_first_response_breached=model.sla_first_response_breached,
        sla_resolution_breached=model.sla_resolution_breached,
        sla_assignee_breached=model.sla_assignee_breached,
        version=model.version,
    )


def _agent_from_model(model: AgentModel) -> AgentWorkloadSnapshot:
    return AgentWorkloadSnapshot(
        agent_id=model.agent_id,
        role=Role(model.role),
        email=model.email,
        registered_at=model.registered_at,
        capacity=model.capacity,
        current_load=model.current_load,
        is_available=model.is_available,
        priority_ceiling=Priority(model.priority_ceiling),
    )


class _SessionRepository:
    """Opens one session and transaction per repository call."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    def _begin(self):
        return self._session_maker.begin()


class SQLAlchemyIssueRepository(_SessionRepository, IIssueRepository):
    """
    SQLAlchemy implementation of issue repository.

    Handles persistence of Issue entities using async SQLAlchemy.
    """

    async def get(self, issue_id: str) -> Optional[Issue]:
        async with self._begin() as session:
            model = await session.get(IssueModel, issue_id)
            return _issue_from_model(model) if model else None

    async def add(self, issue: Issue) -> Issue:
        try:
            async with self._begin() as session:
                session.add(IssueModel(**_issue_columns(issue)))
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to insert issue {issue.id}", {"error": str(e)}) from e
        return issue

    async def save(self, issue: Issue, expected_version: int) -> Issue:
        stored = issue.evolve(version=expected_version + 1)
        values = _issue_columns(stored)
        values.pop("id")

        async with self._begin() as session:
            stmt = (
                update(IssueModel)
                .where(IssueModel.id == issue.id, IssueModel.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                raise StaleVersionError(issue.id, expected_version)
        return stored

    async def list_active(self, limit: Optional[int] = None) -> List[Issue]:
        stmt = (
            select(IssueModel)
            .where(IssueModel.status.in_(_ACTIVE_VALUES))
            .order_by(IssueModel.created_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._begin() as session:
            result = await session.execute(stmt)
            return [_issue_from_model(model) for model in result.scalars().all()]

    async def count_active_by_assignee(self) -> Dict[str, int]:
        stmt = (
            select(IssueModel.assigned_to, func.count())
            .where(IssueModel.status.in_(_ACTIVE_VALUES), IssueModel.assigned_to.is_not(None))
            .group_by(IssueModel.assigned_to)
        )
        async with self._begin() as session:
            result = await session.execute(stmt)
            return {agent_id: count for agent_id, count in result.all()}


class SQLAlchemyCommentRepository(_SessionRepository, ICommentRepository):
    """Append-only comment storage."""

    async def append(self, comment: Comment) -> Comment:
        async with self._begin() as session:
            session.add(CommentModel(
                id=comment.id,
                issue_id=comment.issue_id,
                author_id=comment.author_id,
                content=comment.content,
                internal=comment.internal,
                created_at=comment.created_at,
            ))
        return comment

    async def list_for_issue(self, issue_id: str, internal: bool) -> List[Comment]:
        stmt = (
            select(CommentModel)
            .where(CommentModel.issue_id == issue_id, CommentModel.internal == internal)
            .order_by(CommentModel.sequence.asc())
        )
        async with self._begin() as session:
            result = await session.execute(stmt)
            return [
                Comment(
                    id=model.id,
                    issue_id=model.issue_id,
                    author_id=model.author_id,
                    content=model.content,
                    internal=model.internal,
                    created_at=model.created_at,
                )
                for model in result.scalars().all()
            ]


class SQLAlchemyAuditRepository(_SessionRepository, IAuditRepository):
    """Append-only audit log storage."""

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        model = AuditLogModel(
            id=entry.id,
            issue_id=entry.issue_id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            created_at=entry.created_at,
            before=entry.before,
            after=entry.after,
            details=entry.details,
        )
        async with self._begin() as session:
            session.add(model)
            await session.flush()
            sequence = model.sequence
        return AuditLogEntry(**{**asdict(entry), "sequence": sequence})

    async def list_for_issue(
        self,
        issue_id: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[AuditLogEntry]:
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.issue_id == issue_id)
            .order_by(AuditLogModel.sequence.asc())
            .offset(offset)
            .limit(limit)
        )
        async with self._begin() as session:
            result = await session.execute(stmt)
            return [
                AuditLogEntry(
                    id=model.id,
                    issue_id=model.issue_id,
                    actor_id=model.actor_id,
                    action=AuditAction(model.action),
                    created_at=model.created_at,
                    before=model.before or {},
                    after=model.after or {},
                    details=model.details or {},
                    sequence=model.sequence,
                )
                for model in result.scalars().all()
            ]


class SQLAlchemyAgentRepository(_SessionRepository, IAgentRepository):
    """Agent profiles and atomic load counters."""

    async def get(self, agent_id: str) -> Optional[AgentWorkloadSnapshot]:
        async with self._begin() as session:
            model = await session.get(AgentModel, agent_id)
            return _agent_from_model(model) if model else None

    async def list_all(self) -> List[AgentWorkloadSnapshot]:
        stmt = select(AgentModel).order_by(AgentModel.registered_at.asc(), AgentModel.agent_id.asc())
        async with self._begin() as session:
            result = await session.execute(stmt)
            return [_agent_from_model(model) for model in result.scalars().all()]

    async def register(self, agent: AgentWorkloadSnapshot) -> AgentWorkloadSnapshot:
        try:
            async with self._begin() as session:
                session.add(AgentModel(
                    agent_id=agent.agent_id,
                    role=agent.role.value,
                    email=agent.email,
                    registered_at=agent.registered_at,
                    capacity=agent.capacity,
                    current_load=agent.current_load,
                    is_available=agent.is_available,
                    priority_ceiling=agent.priority_ceiling.value,
                ))
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to register agent {agent.agent_id}", {"error": str(e)}) from e
        return agent

    async def update(
        self,
        agent_id: str,
        is_available: Optional[bool] = None,
        priority_ceiling: Optional[Priority] = None,
        capacity: Optional[int] = None
    ) -> Optional[AgentWorkloadSnapshot]:
        async with self._begin() as session:
            model = await session.get(AgentModel, agent_id)
            if model is None:
                return None
            if is_available is not None:
                model.is_available = is_available
            if priority_ceiling is not None:
                model.priority_ceiling = Priority(priority_ceiling).value
            if capacity is not None:
                model.capacity = capacity
            await session.flush()
            return _agent_from_model(model)

    async def _execute_update(self, stmt) -> int:
        async with self._begin() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            return result.rowcount

    async def try_increment_load(self, agent_id: str) -> bool:
        stmt = (
            update(AgentModel)
            .where(
                AgentModel.agent_id == agent_id,
                AgentModel.is_available.is_(True),
                AgentModel.current_load < AgentModel.capacity,
            )
            .values(current_load=AgentModel.current_load + 1)
        )
        return await self._execute_update(stmt) == 1

    async def force_increment_load(self, agent_id: str) -> None:
        stmt = (
            update(AgentModel)
            .where(AgentModel.agent_id == agent_id)
            .values(current_load=AgentModel.current_load + 1)
        )
        await self._execute_update(stmt)

    async def decrement_load(self, agent_id: str) -> None:
        stmt = (
            update(AgentModel)
            .where(AgentModel.agent_id == agent_id, AgentModel.current_load > 0)
            .values(current_load=AgentModel.current_load - 1)
        )
        await self._execute_update(stmt)

    async def recompute_loads(self, counts: Dict[str, int]) -> None:
        async with self._begin() as session:
            await session.execute(
                update(AgentModel).values(current_load=0).execution_options(synchronize_session=False)
            )
            for agent_id, count in counts.items():
                await session.execute(
                    update(AgentModel)
                    .where(AgentModel.agent_id == agent_id)
                    .values(current_load=count)
                    .execution_options(synchronize_session=False)
                )
