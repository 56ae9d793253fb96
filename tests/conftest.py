"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta, timezone

import pytest

from grievance.access.domain import CommentVisibilityGuard, PermissionModel, Principal
from grievance.bootstrap import build_container, in_memory_repositories
from grievance.config import IssueStatus, Priority, Role, Settings
from grievance.issues.domain import AgentWorkloadSnapshot, Issue, IssueStateMachine
from grievance.shared.infrastructure.notifications import INotificationSink

# Monday 2026-03-02 09:00 UTC
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

JWT_SECRET = "test-secret"


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSink(INotificationSink):
    """Keeps every notification in memory."""

    def __init__(self):
        self.sent = []

    async def notify(self, target, message) -> None:
        self.sent.append((target, message))

    def targets(self):
        return [target.to_dict() for target, _ in self.sent]


def make_issue(**overrides) -> Issue:
    values = dict(
        id="issue-1",
        type_id="payroll",
        description="Salary not credited",
        priority=Priority.MEDIUM,
        status=IssueStatus.OPEN,
        reporter_id="emp-1",
        created_at=T0,
        updated_at=T0,
    )
    values.update(overrides)
    return Issue(**values)


def make_agent(agent_id: str, load: int = 0, capacity: int = 10, registered_offset: int = 0, **profile):
    return AgentWorkloadSnapshot(
        agent_id=agent_id,
        role=profile.pop("role", Role.AGENT),
        registered_at=T0 - timedelta(days=30) + timedelta(seconds=registered_offset),
        capacity=capacity,
        current_load=load,
        **profile,
    )


# ========== Principals ==========

@pytest.fixture
def reporter():
    return Principal(id="emp-1", role=Role.EMPLOYEE, email="emp1@example.com")


@pytest.fixture
def other_employee():
    return Principal(id="emp-2", role=Role.EMPLOYEE, email="emp2@example.com")


@pytest.fixture
def agent_a():
    return Principal(id="agent-a", role=Role.AGENT)


@pytest.fixture
def agent_b():
    return Principal(id="agent-b", role=Role.AGENT)


@pytest.fixture
def manager():
    return Principal(id="mgr-1", role=Role.MANAGER)


@pytest.fixture
def security_admin():
    return Principal(id="sec-1", role=Role.SECURITY_ADMIN)


# ========== Domain ==========

@pytest.fixture
def permission_model():
    return PermissionModel(restricted_emails=["blocked@example.com"])


@pytest.fixture
def guard(permission_model):
    return CommentVisibilityGuard(permission_model)


@pytest.fixture
def state_machine(permission_model):
    return IssueStateMachine(permission_model, timedelta(days=7))


# ========== Application ==========

@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="development",
        jwt_secret=JWT_SECRET,
        jwt_issuer=None,
        jwt_audience=None,
        restricted_emails=["blocked@example.com"],
        use_in_memory_store=True,
        sla_monitor_interval=0,
        notification_webhook_url=None,
    )


@pytest.fixture
def repositories():
    return in_memory_repositories()


@pytest.fixture
def container(settings, repositories, sink, clock):
    return build_container(settings=settings, repositories=repositories, sink=sink, clock=clock)


@pytest.fixture
async def two_agents(repositories):
    """agent-a registered before agent-b, both idle."""
    await repositories.agents.register(make_agent("agent-a", registered_offset=0))
    await repositories.agents.register(make_agent("agent-b", registered_offset=1))
    return repositories.agents


@pytest.fixture
async def open_issue(container, reporter):
    return await container.issue_service.create_issue(
        reporter, type_id="payroll", description="Salary not credited", priority=Priority.MEDIUM
    )
