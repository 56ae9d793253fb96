"""
Issue Application DTOs
======================

Data Transfer Objects for the issues API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Request bodies accept both the camelCase
names used by the clients and snake_case.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from grievance.issues.domain import AgentWorkloadSnapshot, AuditLogEntry, Comment, Issue
from grievance.sla.domain import BreachFlags


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["low", "medium", "high", "critical"]
IssueStatusStr = Literal["open", "in_progress", "resolved", "closed", "escalated"]
RoleStr = Literal["employee", "agent", "manager", "admin", "security-admin"]


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# ========== Request DTOs ==========

class IssueCreateRequest(_Request):
    """Request model for filing an issue."""
    type_id: str = Field(..., alias="typeId", min_length=1, description="Issue category")
    sub_type_id: Optional[str] = Field(None, alias="subTypeId", description="Issue sub-category")
    description: str = Field(..., min_length=1, description="What went wrong")
    priority: PriorityStr = Field(default="medium", description="Initial priority")


class AssignRequest(_Request):
    agent_id: str = Field(..., alias="agentId", min_length=1)


class StatusChangeRequest(_Request):
    status: IssueStatusStr
    resolution_note: Optional[str] = Field(None, alias="resolutionNote")


class EscalateRequest(_Request):
    priority: PriorityStr
    reason: str = Field(..., min_length=1)


class CommentRequest(_Request):
    content: str = Field(..., min_length=1)


class ReopenRequest(_Request):
    reason: str = Field(..., min_length=1)


class AgentRegisterRequest(_Request):
    agent_id: str = Field(..., alias="agentId", min_length=1)
    role: RoleStr = Field(default="agent")
    email: Optional[str] = None
    is_available: bool = Field(default=True, alias="isAvailable")
    priority_ceiling: PriorityStr = Field(default="critical", alias="priorityCeiling")
    capacity: Optional[int] = Field(None, ge=1)


class AgentUpdateRequest(_Request):
    is_available: Optional[bool] = Field(None, alias="isAvailable")
    priority_ceiling: Optional[PriorityStr] = Field(None, alias="priorityCeiling")
    capacity: Optional[int] = Field(None, ge=1)


# ========== Response DTOs ==========

class BreachFlagsResponse(BaseModel):
    first_response_breached: bool
    resolution_breached: bool
    assignee_breached: bool
    frozen: bool = False

    @classmethod
    def from_flags(cls, flags: BreachFlags) -> "BreachFlagsResponse":
        return cls(**flags.to_dict())


class IssueResponse(BaseModel):
    """Issue projection returned by every issue endpoint."""
    id: str
    type_id: str
    sub_type_id: Optional[str] = None
    description: str
    priority: PriorityStr
    status: IssueStatusStr
    reporter_id: str
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    escalation_level: int
    created_at: datetime
    updated_at: datetime
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reopenable_until: Optional[datetime] = None
    previously_closed_at: Optional[datetime] = None
    reopen_count: int = 0
    resolution_note: Optional[str] = None
    version: int

    @classmethod
    def from_entity(cls, issue: Issue) -> "IssueResponse":
        return cls(
            id=issue.id,
            type_id=issue.type_id,
            sub_type_id=issue.sub_type_id,
            description=issue.description,
            priority=issue.priority.value,
            status=issue.status.value,
            reporter_id=issue.reporter_id,
            assigned_to=issue.assigned_to,
            assigned_at=issue.assigned_at,
            escalation_level=issue.escalation_level,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
            first_response_at=issue.first_response_at,
            resolved_at=issue.resolved_at,
            closed_at=issue.closed_at,
            reopenable_until=issue.reopenable_until,
            previously_closed_at=issue.previously_closed_at,
            reopen_count=issue.reopen_count,
            resolution_note=issue.resolution_note,
            version=issue.version,
        )


class IssueEnvelope(BaseModel):
    """Mutated issue plus its current breach flags."""
    issue: IssueResponse
    sla: BreachFlagsResponse

    @classmethod
    def build(cls, issue: Issue, flags: BreachFlags) -> "IssueEnvelope":
        return cls(issue=IssueResponse.from_entity(issue), sla=BreachFlagsResponse.from_flags(flags))


class CommentResponse(BaseModel):
    id: str
    issue_id: str
    author_id: str
    content: str
    internal: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, comment: Comment) -> "CommentResponse":
        return cls(
            id=comment.id,
            issue_id=comment.issue_id,
            author_id=comment.author_id,
            content=comment.content,
            internal=comment.internal,
            created_at=comment.created_at,
        )


class CommentPostedResponse(CommentResponse):
    """A new comment plus the issue it touched and its current breach flags."""
    issue: IssueResponse
    sla: BreachFlagsResponse

    @classmethod
    def build(cls, comment: Comment, issue: Issue, flags: BreachFlags) -> "CommentPostedResponse":
        return cls(
            **CommentResponse.from_entity(comment).model_dump(),
            issue=IssueResponse.from_entity(issue),
            sla=BreachFlagsResponse.from_flags(flags),
        )


class CommentChannelResponse(BaseModel):
    """One comment channel. ``restricted`` means no access, not no comments."""
    restricted: bool
    comments: List[CommentResponse] = Field(default_factory=list)


class CommentListResponse(BaseModel):
    """Both channels; ``issue`` and ``sla`` only for principals who can see the issue."""
    issue_id: str
    external: CommentChannelResponse
    internal: CommentChannelResponse
    issue: Optional[IssueResponse] = None
    sla: Optional[BreachFlagsResponse] = None


class AuditEntryResponse(BaseModel):
    id: str
    sequence: Optional[int] = None
    issue_id: str
    actor_id: str
    action: str
    created_at: datetime
    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any] = Field(default_factory=dict)
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, entry: AuditLogEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            sequence=entry.sequence,
            issue_id=entry.issue_id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            created_at=entry.created_at,
            before=entry.before,
            after=entry.after,
            details=entry.details,
        )


class AuditListResponse(BaseModel):
    issue_id: str
    offset: int
    limit: int
    entries: List[AuditEntryResponse]
    next_offset: Optional[int] = Field(None, description="Offset of the next page, if any")


class AgentResponse(BaseModel):
    agent_id: str
    role: RoleStr
    email: Optional[str] = None
    current_load: int
    capacity: int
    is_available: bool
    priority_ceiling: PriorityStr
    registered_at: datetime

    @classmethod
    def from_entity(cls, agent: AgentWorkloadSnapshot) -> "AgentResponse":
        return cls(
            agent_id=agent.agent_id,
            role=agent.role.value,
            email=agent.email,
            current_load=agent.current_load,
            capacity=agent.capacity,
            is_available=agent.is_available,
            priority_ceiling=agent.priority_ceiling.value,
            registered_at=agent.registered_at,
        )


class WorkloadResponse(BaseModel):
    agents: List[AgentResponse]
    total_load: int
