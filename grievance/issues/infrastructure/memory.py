"""
In-Memory Repositories
======================

Process-local implementations of the issues repository contracts, with the
same concurrency guarantees as the SQL ones: every read-modify-write runs
under an ``asyncio.Lock``.

Used by the tests and by local development wiring (``use_in_memory_store``).
"""

import asyncio
from collections import Counter
from dataclasses import replace
from typing import Dict, List, Optional

from grievance.config import Priority
from grievance.core import RepositoryException, StaleVersionError
from grievance.issues.application.repositories import (
    IAgentRepository,
    IAuditRepository,
    ICommentRepository,
    IIssueRepository,
)
from grievance.issues.domain import AgentWorkloadSnapshot, AuditLogEntry, Comment, Issue


class InMemoryIssueRepository(IIssueRepository):

    def __init__(self):
        self._issues: Dict[str, Issue] = {}
        self._lock = asyncio.Lock()

    async def get(self, issue_id: str) -> Optional[Issue]:
        return self._issues.get(issue_id)

    async def add(self, issue: Issue) -> Issue:
        async with self._lock:
            if issue.id in self._issues:
                raise RepositoryException(f"Issue {issue.id} already exists")
            self._issues[issue.id] = issue
        return issue

    async def save(self, issue: Issue, expected_version: int) -> Issue:
        async with self._lock:
            current = self._issues.get(issue.id)
            if current is None or current.version != expected_version:
                raise StaleVersionError(issue.id, expected_version)
            stored = issue.evolve(version=expected_version + 1)
            self._issues[issue.id] = stored
            return stored

    async def list_active(self, limit: Optional[int] = None) -> List[Issue]:
        active = sorted(
            (issue for issue in self._issues.values() if issue.is_active),
            key=lambda issue: issue.created_at,
        )
        return active if limit is None else active[:limit]

    async def count_active_by_assignee(self) -> Dict[str, int]:
        return dict(Counter(
            issue.assigned_to for issue in self._issues.values()
            if issue.is_active and issue.assigned_to is not None
        ))


class InMemoryCommentRepository(ICommentRepository):

    def __init__(self):
        self._comments: List[Comment] = []
        self._lock = asyncio.Lock()

    async def append(self, comment: Comment) -> Comment:
        async with self._lock:
            self._comments.append(comment)
        return comment

    async def list_for_issue(self, issue_id: str, internal: bool) -> List[Comment]:
        return [
            comment for comment in self._comments
            if comment.issue_id == issue_id and comment.internal == internal
        ]


class InMemoryAuditRepository(IAuditRepository):

    def __init__(self):
        self._entries: List[AuditLogEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._lock:
            stored = replace(entry, sequence=len(self._entries) + 1)
            self._entries.append(stored)
        return stored

    async def list_for_issue(
        self,
        issue_id: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[AuditLogEntry]:
        matching = [entry for entry in self._entries if entry.issue_id == issue_id]
        return matching[offset:offset + limit]


class InMemoryAgentRepository(IAgentRepository):

    def __init__(self):
        self._agents: Dict[str, AgentWorkloadSnapshot] = {}
        self._lock = asyncio.Lock()

    async def get(self, agent_id: str) -> Optional[AgentWorkloadSnapshot]:
        return self._agents.get(agent_id)

    async def list_all(self) -> List[AgentWorkloadSnapshot]:
        return sorted(self._agents.values(), key=lambda a: (a.registered_at, a.agent_id))

    async def register(self, agent: AgentWorkloadSnapshot) -> AgentWorkloadSnapshot:
        async with self._lock:
            if agent.agent_id in self._agents:
                raise RepositoryException(f"Agent {agent.agent_id} already exists")
            self._agents[agent.agent_id] = agent
        return agent

    async def update(
        self,
        agent_id: str,
        is_available: Optional[bool] = None,
        priority_ceiling: Optional[Priority] = None,
        capacity: Optional[int] = None
    ) -> Optional[AgentWorkloadSnapshot]:
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return None
            changes = {}
            if is_available is not None:
                changes["is_available"] = is_available
            if priority_ceiling is not None:
                changes["priority_ceiling"] = Priority(priority_ceiling)
            if capacity is not None:
                changes["capacity"] = capacity
            agent = replace(agent, **changes)
            self._agents[agent_id] = agent
            return agent

    async def try_increment_load(self, agent_id: str) -> bool:
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None or not agent.is_available or not agent.has_capacity:
                return False
            self._agents[agent_id] = replace(agent, current_load=agent.current_load + 1)
            return True

    async def force_increment_load(self, agent_id: str) -> None:
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is not None:
                self._agents[agent_id] = replace(agent, current_load=agent.current_load + 1)

    async def decrement_load(self, agent_id: str) -> None:
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is not None and agent.current_load > 0:
                self._agents[agent_id] = replace(agent, current_load=agent.current_load - 1)

    async def recompute_loads(self, counts: Dict[str, int]) -> None:
        async with self._lock:
            for agent_id, agent in list(self._agents.items()):
                self._agents[agent_id] = replace(agent, current_load=counts.get(agent_id, 0))
