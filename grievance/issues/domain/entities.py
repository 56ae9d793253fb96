"""
Issues Domain Entities
======================

Pure Python domain entities for the issue lifecycle.

Entities are immutable snapshots. A mutation produces a new instance via
``evolve``, which re-runs validation so every state handed to a repository
is internally consistent.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

from grievance.config import (
    AuditAction, IssueStatus, Priority, Role,
    ACTIVE_STATUSES, TERMINAL_STATUSES,
)


@dataclass(frozen=True)
class Issue:
    """
    Issue aggregate root.

    ``version`` is the optimistic-lock stamp; repositories bump it on every
    successful save. The ``sla_*_breached`` fields hold the breach facts
    frozen when the issue entered resolved/closed.
    """

    # Core attributes
    id: str
    type_id: str
    description: str
    priority: Priority
    status: IssueStatus
    reporter_id: str

    # Timestamps
    created_at: datetime
    updated_at: datetime

    sub_type_id: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    assignee_responded_at: Optional[datetime] = None

    escalation_level: int = 0
    escalated_at: Optional[datetime] = None

    # Lifecycle tracking
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reopenable_until: Optional[datetime] = None
    previously_closed_at: Optional[datetime] = None
    reopen_count: int = 0
    resolution_note: Optional[str] = None

    # Frozen breach snapshot
    sla_first_response_breached: Optional[bool] = None
    sla_resolution_breached: Optional[bool] = None
    sla_assignee_breached: Optional[bool] = None

    version: int = 1

    def __post_init__(self):
        """Validate status and timestamp consistency."""
        if self.escalation_level < 0:
            raise ValueError("escalation_level cannot be negative")
        if self.reopen_count < 0:
            raise ValueError("reopen_count cannot be negative")
        if self.version < 1:
            raise ValueError("version must be positive")

        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        for name in ("first_response_at", "resolved_at", "closed_at", "assigned_at"):
            value = getattr(self, name)
            if value is not None and value < self.created_at:
                raise ValueError(f"{name} cannot be before created_at")

        if self.assigned_to is None and self.assigned_at is not None:
            raise ValueError("assigned_at set without an assignee")
        if self.assignee_responded_at is not None:
            if self.assigned_at is None or self.assignee_responded_at < self.assigned_at:
                raise ValueError("assignee_responded_at must follow assigned_at")

        if self.closed_at is not None:
            if self.resolved_at is None:
                raise ValueError("closed_at implies resolved_at")
            if self.closed_at < self.resolved_at:
                raise ValueError("closed_at cannot be before resolved_at")

        if self.status in ACTIVE_STATUSES:
            if self.resolved_at or self.closed_at or self.reopenable_until:
                raise ValueError(f"{self.status.value} issue cannot carry resolution timestamps")
        elif self.status == IssueStatus.RESOLVED:
            if self.resolved_at is None or self.closed_at is not None:
                raise ValueError("resolved issue needs resolved_at and no closed_at")
        elif self.status == IssueStatus.CLOSED:
            if self.closed_at is None:
                raise ValueError("closed issue needs closed_at")

        if self.status in TERMINAL_STATUSES and self.reopenable_until is None:
            raise ValueError(f"{self.status.value} issue needs reopenable_until")

        if self.status == IssueStatus.ESCALATED and self.escalation_level == 0:
            raise ValueError("escalated issue needs escalation_level >= 1")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def evolve(self, **changes: Any) -> "Issue":
        """Return a validated copy with ``changes`` applied."""
        return replace(self, **changes)

    def is_assignee(self, principal_id: str) -> bool:
        return self.assigned_to is not None and self.assigned_to == principal_id

    def audit_view(self) -> Dict[str, Any]:
        """Fields recorded as before/after payloads in the audit trail."""
        return {
            "status": self.status.value,
            "priority": self.priority.value,
            "assigned_to": self.assigned_to,
            "escalation_level": self.escalation_level,
            "version": self.version,
        }


@dataclass(frozen=True)
class Comment:
    """A comment on one of the two channels. Append-only."""
    id: str
    issue_id: str
    author_id: str
    content: str
    internal: bool
    created_at: datetime

    def __post_init__(self):
        if not self.content or not self.content.strip():
            raise ValueError("comment content cannot be empty")


@dataclass(frozen=True)
class AuditLogEntry:
    """
    Immutable record of one mutation.

    ``sequence`` is assigned by the store on append and defines list order.
    """
    id: str
    issue_id: str
    actor_id: str
    action: AuditAction
    created_at: datetime
    before: Dict[str, Any] = field(default_factory=dict)
    after: Dict[str, Any] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)
    sequence: Optional[int] = None


@dataclass(frozen=True)
class AgentWorkloadSnapshot:
    """
    An agent's assignment profile and current load.

    ``current_load`` counts active issues assigned to the agent;
    ``priority_ceiling`` is the most severe priority the agent may receive.
    """
    agent_id: str
    role: Role
    registered_at: datetime
    capacity: int
    current_load: int = 0
    is_available: bool = True
    priority_ceiling: Priority = Priority.CRITICAL
    email: Optional[str] = None

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        if self.current_load < 0:
            raise ValueError("current_load cannot be negative")

    @property
    def has_capacity(self) -> bool:
        return self.current_load < self.capacity

    def covers(self, priority: Priority) -> bool:
        return self.priority_ceiling.covers(priority)
