"""
Issues Application Layer
========================

Application layer for the issue lifecycle.

Contains:
- Services: IssueService, AssignmentEngine, AgentDirectory,
  EscalationManager, AuditTrail
- Repository interfaces the infrastructure layer implements
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from grievance.issues.application.repositories import (
    IIssueRepository,
    ICommentRepository,
    IAuditRepository,
    IAgentRepository,
)
from grievance.issues.application.audit import AuditTrail
from grievance.issues.application.base import run_optimistic
from grievance.issues.application.assignment import AssignmentEngine, AgentDirectory
from grievance.issues.application.escalation import EscalationManager
from grievance.issues.application.services import IssueService, CommentListing, PostedComment

__all__ = [
    # Repository Interfaces
    "IIssueRepository",
    "ICommentRepository",
    "IAuditRepository",
    "IAgentRepository",
    # Services
    "AuditTrail",
    "run_optimistic",
    "AssignmentEngine",
    "AgentDirectory",
    "EscalationManager",
    "IssueService",
    "CommentListing",
    "PostedComment",
]
