"""Tests for the SQLAlchemy repositories against a SQLite file database."""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import grievance.issues.infrastructure.models  # noqa: F401
from grievance.bootstrap import build_container, sqlalchemy_repositories
from grievance.config import AuditAction, IssueStatus, Priority
from grievance.core import StaleVersionError
from grievance.infrastructure.database import Base
from grievance.issues.domain import AuditLogEntry, Comment

from tests.conftest import T0, make_agent, make_issue


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'grievances.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_repositories(session_maker):
    return sqlalchemy_repositories(session_maker)


class TestIssueRepository:

    async def test_round_trip_keeps_aware_timestamps(self, sql_repositories):
        issue = make_issue(assigned_to="agent-a", assigned_at=T0 + timedelta(minutes=5))
        await sql_repositories.issues.add(issue)

        loaded = await sql_repositories.issues.get(issue.id)

        assert loaded == issue
        assert loaded.created_at.tzinfo is not None

    async def test_save_bumps_version(self, sql_repositories):
        issue = await sql_repositories.issues.add(make_issue())

        saved = await sql_repositories.issues.save(
            issue.evolve(status=IssueStatus.IN_PROGRESS, first_response_at=T0), expected_version=1
        )

        assert saved.version == 2
        assert (await sql_repositories.issues.get(issue.id)).status == IssueStatus.IN_PROGRESS

    async def test_stale_save_is_rejected(self, sql_repositories):
        issue = await sql_repositories.issues.add(make_issue())
        await sql_repositories.issues.save(issue.evolve(priority=Priority.HIGH), expected_version=1)

        with pytest.raises(StaleVersionError):
            await sql_repositories.issues.save(issue.evolve(priority=Priority.LOW), expected_version=1)

        assert (await sql_repositories.issues.get(issue.id)).priority == Priority.HIGH

    async def test_active_listing_and_assignee_counts(self, sql_repositories):
        await sql_repositories.issues.add(make_issue(id="i-1", assigned_to="agent-a", assigned_at=T0))
        await sql_repositories.issues.add(make_issue(
            id="i-2", assigned_to="agent-a", assigned_at=T0, created_at=T0 - timedelta(hours=1)
        ))
        await sql_repositories.issues.add(make_issue(
            id="i-3",
            assigned_to="agent-b",
            assigned_at=T0,
            status=IssueStatus.RESOLVED,
            resolved_at=T0,
            reopenable_until=T0 + timedelta(days=7),
        ))

        active = await sql_repositories.issues.list_active()

        assert [issue.id for issue in active] == ["i-2", "i-1"]
        assert await sql_repositories.issues.count_active_by_assignee() == {"agent-a": 2}


class TestAppendOnlyRepositories:

    async def test_audit_sequence_and_pagination(self, sql_repositories):
        for action in (AuditAction.CREATED, AuditAction.ASSIGNED, AuditAction.STATUS_CHANGED):
            await sql_repositories.audit.append(AuditLogEntry(
                id=f"a-{action.value}",
                issue_id="issue-1",
                actor_id="mgr-1",
                action=action,
                created_at=T0,
                details={"note": action.value},
            ))

        entries = await sql_repositories.audit.list_for_issue("issue-1")
        page = await sql_repositories.audit.list_for_issue("issue-1", offset=1, limit=1)

        assert [entry.action for entry in entries] == [
            AuditAction.CREATED, AuditAction.ASSIGNED, AuditAction.STATUS_CHANGED
        ]
        assert entries[0].sequence < entries[1].sequence < entries[2].sequence
        assert entries[2].details == {"note": "status_changed"}
        assert [entry.action for entry in page] == [AuditAction.ASSIGNED]

    async def test_comments_are_split_by_channel(self, sql_repositories):
        await sql_repositories.comments.append(Comment(
            id="c-1", issue_id="issue-1", author_id="emp-1", content="hello", internal=False, created_at=T0
        ))
        await sql_repositories.comments.append(Comment(
            id="c-2", issue_id="issue-1", author_id="agent-a", content="note", internal=True, created_at=T0
        ))

        external = await sql_repositories.comments.list_for_issue("issue-1", internal=False)
        internal = await sql_repositories.comments.list_for_issue("issue-1", internal=True)

        assert [c.id for c in external] == ["c-1"]
        assert [c.id for c in internal] == ["c-2"]

    async def test_same_timestamp_comments_keep_append_order(self, sql_repositories):
        for comment_id in ("c-9", "c-1", "c-5"):
            await sql_repositories.comments.append(Comment(
                id=comment_id, issue_id="issue-1", author_id="emp-1", content=comment_id, internal=False, created_at=T0
            ))

        comments = await sql_repositories.comments.list_for_issue("issue-1", internal=False)

        assert [c.id for c in comments] == ["c-9", "c-1", "c-5"]


class TestAgentRepository:

    async def test_try_increment_respects_capacity(self, sql_repositories):
        await sql_repositories.agents.register(make_agent("agent-a", capacity=2))

        results = [await sql_repositories.agents.try_increment_load("agent-a") for _ in range(3)]

        assert results == [True, True, False]
        assert (await sql_repositories.agents.get("agent-a")).current_load == 2

    async def test_unavailable_agent_takes_no_load(self, sql_repositories):
        await sql_repositories.agents.register(make_agent("agent-a", is_available=False))

        assert not await sql_repositories.agents.try_increment_load("agent-a")

    async def test_force_and_decrement(self, sql_repositories):
        await sql_repositories.agents.register(make_agent("agent-a", load=1, capacity=1))

        await sql_repositories.agents.force_increment_load("agent-a")
        assert (await sql_repositories.agents.get("agent-a")).current_load == 2

        for _ in range(3):
            await sql_repositories.agents.decrement_load("agent-a")
        assert (await sql_repositories.agents.get("agent-a")).current_load == 0

    async def test_update_and_recompute(self, sql_repositories):
        await sql_repositories.agents.register(make_agent("agent-a", load=5))
        await sql_repositories.agents.register(make_agent("agent-b", load=2, registered_offset=1))

        updated = await sql_repositories.agents.update("agent-a", priority_ceiling=Priority.HIGH, capacity=4)
        await sql_repositories.agents.recompute_loads({"agent-b": 1})

        assert updated.priority_ceiling == Priority.HIGH
        assert updated.capacity == 4
        agents = await sql_repositories.agents.list_all()
        assert [(a.agent_id, a.current_load) for a in agents] == [("agent-a", 0), ("agent-b", 1)]
        assert await sql_repositories.agents.update("ghost", is_available=True) is None


class TestServicesOverDatabase:

    async def test_full_flow(self, settings, sql_repositories, sink, clock, reporter, manager, agent_a):
        container = build_container(
            settings=settings, repositories=sql_repositories, sink=sink, clock=clock, uses_database=True
        )
        await sql_repositories.agents.register(make_agent("agent-a"))

        issue = await container.issue_service.create_issue(reporter, type_id="payroll", description="Late pay")
        await container.assignment_engine.auto_assign(issue.id, manager)
        clock.advance(hours=1)
        await container.issue_service.add_comment(issue.id, agent_a, "On it", internal=True)
        resolved = await container.issue_service.transition(issue.id, IssueStatus.RESOLVED, agent_a, "Paid")

        assert resolved.version == 4
        assert resolved.sla_resolution_breached is False
        assert (await sql_repositories.agents.get("agent-a")).current_load == 0
        actions = [e.action for e in await container.issue_service.audit_log(issue.id, manager)]
        assert actions == [
            AuditAction.CREATED,
            AuditAction.ASSIGNED,
            AuditAction.INTERNAL_COMMENT_ADDED,
            AuditAction.STATUS_CHANGED,
        ]
        await container.notifier.drain()
