"""
Issue Controllers (API Routes)
==============================

FastAPI routes for the issue lifecycle and agent workload.

Controllers are thin - they resolve the principal, delegate to application
services and wrap results in response DTOs. Every issue mutation answers
with the updated issue and its current breach flags.
"""

from fastapi import APIRouter, Depends, Query, status

from grievance.access.domain import Principal
from grievance.issues.application import (
    AgentDirectory,
    AssignmentEngine,
    EscalationManager,
    IssueService,
)
from grievance.issues.application.dto import (
    AgentRegisterRequest,
    AgentResponse,
    AgentUpdateRequest,
    AssignRequest,
    AuditEntryResponse,
    AuditListResponse,
    CommentChannelResponse,
    CommentListResponse,
    CommentPostedResponse,
    CommentRequest,
    CommentResponse,
    EscalateRequest,
    IssueCreateRequest,
    IssueEnvelope,
    ReopenRequest,
    StatusChangeRequest,
    WorkloadResponse,
)
from grievance.issues.domain import Issue
from grievance.issues.interfaces.dependencies import (
    get_agent_directory,
    get_assignment_engine,
    get_escalation_manager,
    get_issue_service,
    get_principal,
)
from grievance.config import IssueStatus, Priority, Role
from grievance.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/issues", tags=["Issues"])
agents_router = APIRouter(prefix="/agents", tags=["Agents"])


ERROR_RESPONSES = {
    401: {"description": "Missing or invalid bearer token"},
    403: {"description": "Principal lacks the required permission"},
    404: {"description": "Issue not found"},
    409: {"description": "Invalid transition, expired reopen window, max priority, no eligible agent or conflict"},
}


def _envelope(service: IssueService, issue: Issue) -> IssueEnvelope:
    return IssueEnvelope.build(issue, service.breach_flags(issue))


# ========== Issues ==========

@router.post(
    "",
    response_model=IssueEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="File an issue",
    responses=ERROR_RESPONSES,
)
async def create_issue(
    request: IssueCreateRequest,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.create_issue(
        principal,
        type_id=request.type_id,
        description=request.description,
        priority=Priority(request.priority),
        sub_type_id=request.sub_type_id,
    )
    return _envelope(service, issue)


@router.get(
    "/{issue_id}",
    response_model=IssueEnvelope,
    summary="Get an issue with its breach flags",
    responses=ERROR_RESPONSES,
)
async def get_issue(
    issue_id: str,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.get_issue(issue_id, principal)
    return _envelope(service, issue)


@router.post(
    "/{issue_id}/assign",
    response_model=IssueEnvelope,
    summary="Assign an issue to a named agent",
    responses=ERROR_RESPONSES,
)
async def assign_issue(
    issue_id: str,
    request: AssignRequest,
    principal: Principal = Depends(get_principal),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    service: IssueService = Depends(get_issue_service)
):
    issue = await engine.assign(issue_id, request.agent_id, principal)
    return _envelope(service, issue)


@router.post(
    "/{issue_id}/auto-assign",
    response_model=IssueEnvelope,
    summary="Assign an issue to the least-loaded eligible agent",
    responses=ERROR_RESPONSES,
)
async def auto_assign_issue(
    issue_id: str,
    principal: Principal = Depends(get_principal),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    service: IssueService = Depends(get_issue_service)
):
    issue = await engine.auto_assign(issue_id, principal)
    return _envelope(service, issue)


@router.post(
    "/{issue_id}/unassign",
    response_model=IssueEnvelope,
    summary="Remove the current assignee",
    responses=ERROR_RESPONSES,
)
async def unassign_issue(
    issue_id: str,
    principal: Principal = Depends(get_principal),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    service: IssueService = Depends(get_issue_service)
):
    issue = await engine.unassign(issue_id, principal)
    return _envelope(service, issue)


@router.patch(
    "/{issue_id}/status",
    response_model=IssueEnvelope,
    summary="Change issue status",
    description="""
    Move an issue along its lifecycle.

    Allowed: open -> in_progress | resolved, in_progress -> resolved | closed,
    escalated -> in_progress | closed, resolved -> closed | open, closed -> open.
    Resolving or closing requires `resolutionNote`. Moving a resolved or
    closed issue to `open` reopens it and is only possible inside the
    reopen window. `escalated` is entered through the escalate endpoint.
    """,
    responses=ERROR_RESPONSES,
)
async def change_status(
    issue_id: str,
    request: StatusChangeRequest,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.transition(
        issue_id,
        IssueStatus(request.status),
        principal,
        resolution_note=request.resolution_note,
    )
    return _envelope(service, issue)


@router.post(
    "/{issue_id}/reopen",
    response_model=IssueEnvelope,
    summary="Reopen a resolved or closed issue",
    responses=ERROR_RESPONSES,
)
async def reopen_issue(
    issue_id: str,
    request: ReopenRequest,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.reopen(issue_id, principal, request.reason)
    return _envelope(service, issue)


@router.post(
    "/{issue_id}/escalate",
    response_model=IssueEnvelope,
    summary="Escalate an issue to a higher priority",
    responses=ERROR_RESPONSES,
)
async def escalate_issue(
    issue_id: str,
    request: EscalateRequest,
    principal: Principal = Depends(get_principal),
    manager: EscalationManager = Depends(get_escalation_manager),
    service: IssueService = Depends(get_issue_service)
):
    issue = await manager.escalate(issue_id, Priority(request.priority), request.reason, principal)
    return _envelope(service, issue)


@router.post(
    "/{issue_id}/comments",
    response_model=CommentPostedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post an external comment",
    responses=ERROR_RESPONSES,
)
async def add_comment(
    issue_id: str,
    request: CommentRequest,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    posted = await service.add_comment(issue_id, principal, request.content, internal=False)
    return CommentPostedResponse.build(posted.comment, posted.issue, service.breach_flags(posted.issue))


@router.post(
    "/{issue_id}/internal-comments",
    response_model=CommentPostedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post an internal comment (staff only)",
    responses=ERROR_RESPONSES,
)
async def add_internal_comment(
    issue_id: str,
    request: CommentRequest,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    posted = await service.add_comment(issue_id, principal, request.content, internal=True)
    return CommentPostedResponse.build(posted.comment, posted.issue, service.breach_flags(posted.issue))


@router.get(
    "/{issue_id}/comments",
    response_model=CommentListResponse,
    summary="List both comment channels",
    description="A channel the caller may not read comes back with `restricted: true` and no comments.",
    responses=ERROR_RESPONSES,
)
async def list_comments(
    issue_id: str,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    listing = await service.list_comments(issue_id, principal)

    def channel(comments) -> CommentChannelResponse:
        if comments is None:
            return CommentChannelResponse(restricted=True)
        return CommentChannelResponse(
            restricted=False,
            comments=[CommentResponse.from_entity(c) for c in comments],
        )

    response = CommentListResponse(
        issue_id=listing.issue_id,
        external=channel(listing.external),
        internal=channel(listing.internal),
    )
    if listing.issue is not None:
        envelope = _envelope(service, listing.issue)
        response.issue = envelope.issue
        response.sla = envelope.sla
    return response


@router.get(
    "/{issue_id}/sla",
    summary="Get SLA clock status",
    responses=ERROR_RESPONSES,
)
async def get_sla_status(
    issue_id: str,
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    sla_status = await service.sla_status(issue_id, principal)
    return sla_status.to_dict()


@router.get(
    "/{issue_id}/audit",
    response_model=AuditListResponse,
    summary="List the audit trail of an issue",
    responses=ERROR_RESPONSES,
)
async def get_audit_log(
    issue_id: str,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(get_principal),
    service: IssueService = Depends(get_issue_service)
):
    entries = await service.audit_log(issue_id, principal, offset=offset, limit=limit)
    return AuditListResponse(
        issue_id=issue_id,
        offset=offset,
        limit=limit,
        entries=[AuditEntryResponse.from_entity(entry) for entry in entries],
        next_offset=offset + len(entries) if len(entries) == limit else None,
    )


# ========== Agents ==========

@agents_router.get(
    "/workload",
    response_model=WorkloadResponse,
    summary="Current agent workload",
    responses=ERROR_RESPONSES,
)
async def get_workload(
    principal: Principal = Depends(get_principal),
    directory: AgentDirectory = Depends(get_agent_directory)
):
    agents = await directory.workloads(principal)
    return WorkloadResponse(
        agents=[AgentResponse.from_entity(agent) for agent in agents],
        total_load=sum(agent.current_load for agent in agents),
    )


@agents_router.post(
    "",
    response_model=AgentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an agent",
    responses=ERROR_RESPONSES,
)
async def register_agent(
    request: AgentRegisterRequest,
    principal: Principal = Depends(get_principal),
    directory: AgentDirectory = Depends(get_agent_directory)
):
    agent = directory.new_agent(
        request.agent_id,
        Role(request.role),
        email=request.email,
        is_available=request.is_available,
        priority_ceiling=Priority(request.priority_ceiling),
        capacity=request.capacity,
    )
    agent = await directory.register(principal, agent)
    return AgentResponse.from_entity(agent)


@agents_router.patch(
    "/{agent_id}",
    response_model=AgentResponse,
    summary="Change agent availability, priority ceiling or capacity",
    responses=ERROR_RESPONSES,
)
async def update_agent(
    agent_id: str,
    request: AgentUpdateRequest,
    principal: Principal = Depends(get_principal),
    directory: AgentDirectory = Depends(get_agent_directory)
):
    agent = await directory.update(
        principal,
        agent_id,
        is_available=request.is_available,
        priority_ceiling=Priority(request.priority_ceiling) if request.priority_ceiling else None,
        capacity=request.capacity,
    )
    return AgentResponse.from_entity(agent)
