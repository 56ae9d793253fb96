"""
Issues Infrastructure Models
============================

SQLAlchemy ORM models for the issues context.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from grievance.config import IssueStatus, Priority
from grievance.infrastructure.database import Base, UTCDateTime


class IssueModel(Base):
    """
    Database model for the Issue aggregate.

    Maps to the 'issues' table. ``version`` is the optimistic-lock stamp.
    """
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Category
    type_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_type_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=IssueStatus.OPEN.value, index=True)
    reporter_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Assignment
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    assignee_responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Escalation
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopenable_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    previously_closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Frozen breach snapshot
    sla_first_response_breached: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    sla_resolution_breached: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    sla_assignee_breached: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class CommentModel(Base):
    """
    Database model for Comment entity.

    Maps to the 'issue_comments' table. Rows are only ever inserted;
    ``sequence`` defines append order.
    """
    __tablename__ = "issue_comments"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    issue_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class AuditLogModel(Base):
    """
    Database model for AuditLogEntry entity.

    Maps to the 'issue_audit_log' table. ``sequence`` defines append order.
    """
    __tablename__ = "issue_audit_log"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    issue_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    before: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    after: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


class AgentModel(Base):
    """
    Database model for an agent's workload profile.

    Maps to the 'agents' table.
    """
    __tablename__ = "agents"

    agent_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_load: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority_ceiling: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.CRITICAL.value)
