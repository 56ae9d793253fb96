"""
Issues Domain Layer
===================

Domain layer for the issue lifecycle.

Contains:
- Entities: Issue, Comment, AuditLogEntry, AgentWorkloadSnapshot
- IssueStateMachine: status edges, reopen window, escalation entry
- AssignmentPolicy: agent eligibility and ranking

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from grievance.issues.domain.entities import (
    Issue,
    Comment,
    AuditLogEntry,
    AgentWorkloadSnapshot,
)
from grievance.issues.domain.state_machine import (
    ALLOWED_TRANSITIONS,
    IssueStateMachine,
)
from grievance.issues.domain.assignment import AssignmentPolicy

__all__ = [
    # Entities
    "Issue",
    "Comment",
    "AuditLogEntry",
    "AgentWorkloadSnapshot",
    # Domain services
    "ALLOWED_TRANSITIONS",
    "IssueStateMachine",
    "AssignmentPolicy",
]
