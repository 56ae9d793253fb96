"""
Service Wiring
==============

Builds the object graph once per process and keeps it in one container,
which the FastAPI app stores on ``app.state.container``.

Two storage wirings share everything above the repositories:

- ``in_memory_repositories()``: process-local, for tests and local runs
- ``sqlalchemy_repositories(session_maker)``: the async SQLAlchemy store
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grievance.access.application import IPrincipalResolver
from grievance.access.domain import CommentVisibilityGuard, PermissionModel
from grievance.access.infrastructure import JWTPrincipalResolver
from grievance.config import Settings, get_settings
from grievance.core.clock import Clock, utc_now
from grievance.issues.application import (
    AgentDirectory,
    AssignmentEngine,
    AuditTrail,
    EscalationManager,
    IAgentRepository,
    IAuditRepository,
    ICommentRepository,
    IIssueRepository,
    IssueService,
)
from grievance.issues.domain import IssueStateMachine
from grievance.issues.infrastructure import (
    InMemoryAgentRepository,
    InMemoryAuditRepository,
    InMemoryCommentRepository,
    InMemoryIssueRepository,
    SQLAlchemyAgentRepository,
    SQLAlchemyAuditRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyIssueRepository,
)
from grievance.shared.infrastructure.notifications import (
    INotificationSink,
    NotificationDispatcher,
    build_notification_sink,
)
from grievance.sla.application import ISLAPolicyProvider, SLAMonitorService, StaticSLAPolicyProvider
from grievance.sla.domain import SLAClock


@dataclass
class Repositories:
    issues: IIssueRepository
    comments: ICommentRepository
    audit: IAuditRepository
    agents: IAgentRepository


def in_memory_repositories() -> Repositories:
    return Repositories(
        issues=InMemoryIssueRepository(),
        comments=InMemoryCommentRepository(),
        audit=InMemoryAuditRepository(),
        agents=InMemoryAgentRepository(),
    )


def sqlalchemy_repositories(session_maker: async_sessionmaker[AsyncSession]) -> Repositories:
    return Repositories(
        issues=SQLAlchemyIssueRepository(session_maker),
        comments=SQLAlchemyCommentRepository(session_maker),
        audit=SQLAlchemyAuditRepository(session_maker),
        agents=SQLAlchemyAgentRepository(session_maker),
    )


@dataclass
class ServiceContainer:
    """Everything the HTTP layer and the background jobs need."""
    settings: Settings
    repositories: Repositories
    permission_model: PermissionModel
    visibility_guard: CommentVisibilityGuard
    state_machine: IssueStateMachine
    policy_provider: ISLAPolicyProvider
    sla_clock: SLAClock
    notifier: NotificationDispatcher
    audit_trail: AuditTrail
    issue_service: IssueService
    assignment_engine: AssignmentEngine
    escalation_manager: EscalationManager
    agent_directory: AgentDirectory
    sla_monitor: SLAMonitorService
    principal_resolver: IPrincipalResolver
    uses_database: bool = False


def build_container(
    settings: Optional[Settings] = None,
    repositories: Optional[Repositories] = None,
    policy_provider: Optional[ISLAPolicyProvider] = None,
    sink: Optional[INotificationSink] = None,
    principal_resolver: Optional[IPrincipalResolver] = None,
    clock: Clock = utc_now,
    uses_database: bool = False
) -> ServiceContainer:
    """
    Wire the services over the given repositories.

    Anything not supplied falls back to the configured default: in-memory
    storage, the built-in SLA thresholds, the notification sink chosen by
    settings and the JWT resolver.
    """
    settings = settings or get_settings()
    repositories = repositories or in_memory_repositories()
    policy_provider = policy_provider or StaticSLAPolicyProvider()
    retries = settings.max_conflict_retries

    permission_model = PermissionModel(restricted_emails=settings.restricted_emails)
    visibility_guard = CommentVisibilityGuard(permission_model)
    state_machine = IssueStateMachine(permission_model, timedelta(days=settings.reopen_window_days))
    sla_clock = SLAClock(policy_provider)
    notifier = NotificationDispatcher(sink or build_notification_sink())
    audit_trail = AuditTrail(repositories.audit, clock=clock)

    issue_service = IssueService(
        repositories.issues,
        repositories.comments,
        repositories.agents,
        audit_trail,
        state_machine,
        visibility_guard,
        permission_model,
        sla_clock,
        notifier=notifier,
        max_conflict_retries=retries,
        clock=clock,
    )
    assignment_engine = AssignmentEngine(
        repositories.issues,
        repositories.agents,
        audit_trail,
        permission_model,
        notifier=notifier,
        max_conflict_retries=retries,
        clock=clock,
    )
    escalation_manager = EscalationManager(
        repositories.issues,
        repositories.agents,
        state_machine,
        assignment_engine,
        audit_trail,
        permission_model,
        notifier=notifier,
        max_conflict_retries=retries,
        clock=clock,
    )
    agent_directory = AgentDirectory(
        repositories.agents,
        repositories.issues,
        permission_model,
        default_capacity=settings.default_agent_capacity,
        clock=clock,
    )
    sla_monitor = SLAMonitorService(
        repositories.issues,
        sla_clock,
        audit_trail=audit_trail,
        escalation_manager=escalation_manager,
        notifier=notifier,
        auto_escalate=settings.sla_auto_escalate,
        clock=clock,
    )

    return ServiceContainer(
        settings=settings,
        repositories=repositories,
        permission_model=permission_model,
        visibility_guard=visibility_guard,
        state_machine=state_machine,
        policy_provider=policy_provider,
        sla_clock=sla_clock,
        notifier=notifier,
        audit_trail=audit_trail,
        issue_service=issue_service,
        assignment_engine=assignment_engine,
        escalation_manager=escalation_manager,
        agent_directory=agent_directory,
        sla_monitor=sla_monitor,
        principal_resolver=principal_resolver or JWTPrincipalResolver(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        ),
        uses_database=uses_database,
    )
