"""
Repository Interfaces
=====================

Storage contracts for the issues context (Dependency Inversion).

- Issues are read with their version stamp and saved only if that stamp is
  unchanged (``StaleVersionError`` otherwise).
- Comments and audit entries are append-only.
- Agent load changes are single atomic updates per call.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from grievance.config import Priority
from grievance.issues.domain import AgentWorkloadSnapshot, AuditLogEntry, Comment, Issue


class IIssueRepository(ABC):
    """Interface for issue data access."""

    @abstractmethod
    async def get(self, issue_id: str) -> Optional[Issue]:
        """Get issue by ID."""

    @abstractmethod
    async def add(self, issue: Issue) -> Issue:
        """Insert a new issue."""

    @abstractmethod
    async def save(self, issue: Issue, expected_version: int) -> Issue:
        """
        Persist ``issue`` if the stored version still equals ``expected_version``.

        Returns the stored issue with its version bumped by one.

        Raises:
            StaleVersionError: the stored version moved on (or the row is gone)
        """

    @abstractmethod
    async def list_active(self, limit: Optional[int] = None) -> List[Issue]:
        """Issues in open, in_progress or escalated status, oldest first."""

    @abstractmethod
    async def count_active_by_assignee(self) -> Dict[str, int]:
        """Number of active issues per assignee."""


class ICommentRepository(ABC):
    """Interface for comment data access."""

    @abstractmethod
    async def append(self, comment: Comment) -> Comment:
        """Append a comment."""

    @abstractmethod
    async def list_for_issue(self, issue_id: str, internal: bool) -> List[Comment]:
        """Comments of one channel, oldest first."""


class IAuditRepository(ABC):
    """Interface for audit trail storage."""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append an entry; the returned copy carries its ``sequence``."""

    @abstractmethod
    async def list_for_issue(
        self,
        issue_id: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[AuditLogEntry]:
        """Entries for an issue in append order."""


class IAgentRepository(ABC):
    """Interface for agent workload data access."""

    @abstractmethod
    async def get(self, agent_id: str) -> Optional[AgentWorkloadSnapshot]:
        """Get agent by ID."""

    @abstractmethod
    async def list_all(self) -> List[AgentWorkloadSnapshot]:
        """All registered agents."""

    @abstractmethod
    async def register(self, agent: AgentWorkloadSnapshot) -> AgentWorkloadSnapshot:
        """Register a new agent."""

    @abstractmethod
    async def update(
        self,
        agent_id: str,
        is_available: Optional[bool] = None,
        priority_ceiling: Optional[Priority] = None,
        capacity: Optional[int] = None
    ) -> Optional[AgentWorkloadSnapshot]:
        """Change an agent's profile. Returns None when the agent is unknown."""

    @abstractmethod
    async def try_increment_load(self, agent_id: str) -> bool:
        """
        Atomically take one unit of load if the agent is available and under capacity.

        Returns True when the unit was taken.
        """

    @abstractmethod
    async def force_increment_load(self, agent_id: str) -> None:
        """Take one unit of load without the capacity check."""

    @abstractmethod
    async def decrement_load(self, agent_id: str) -> None:
        """Release one unit of load, never going below zero."""

    @abstractmethod
    async def recompute_loads(self, counts: Dict[str, int]) -> None:
        """Overwrite every agent's load from ``counts`` (missing agents get zero)."""
