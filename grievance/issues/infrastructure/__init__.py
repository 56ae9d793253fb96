"""
Issues Infrastructure Layer
===========================

Concrete implementations for the issues context.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy and in-memory repository implementations
"""

from grievance.issues.infrastructure.models import (
    IssueModel,
    CommentModel,
    AuditLogModel,
    AgentModel,
)
from grievance.issues.infrastructure.repositories import (
    SQLAlchemyIssueRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyAuditRepository,
    SQLAlchemyAgentRepository,
)
from grievance.issues.infrastructure.memory import (
    InMemoryIssueRepository,
    InMemoryCommentRepository,
    InMemoryAuditRepository,
    InMemoryAgentRepository,
)

__all__ = [
    # Models
    "IssueModel",
    "CommentModel",
    "AuditLogModel",
    "AgentModel",
    # SQLAlchemy repositories
    "SQLAlchemyIssueRepository",
    "SQLAlchemyCommentRepository",
    "SQLAlchemyAuditRepository",
    "SQLAlchemyAgentRepository",
    # In-memory repositories
    "InMemoryIssueRepository",
    "InMemoryCommentRepository",
    "InMemoryAuditRepository",
    "InMemoryAgentRepository",
]
