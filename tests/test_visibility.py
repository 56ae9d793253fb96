"""Tests for who may read and write each comment channel."""
import pytest

from grievance.access.domain import CommentChannel
from grievance.config import IssueStatus

from tests.conftest import T0, make_issue


@pytest.fixture
def assigned_issue():
    return make_issue(assigned_to="agent-a", assigned_at=T0)


class TestExternalChannel:

    def test_reporter_assignee_and_manager_can_view(self, guard, assigned_issue, reporter, agent_a, manager):
        for principal in (reporter, agent_a, manager):
            assert guard.can_view(principal, assigned_issue)

    def test_unrelated_principals_cannot_view(self, guard, assigned_issue, other_employee, agent_b, security_admin):
        for principal in (other_employee, agent_b, security_admin):
            assert not guard.can_view(principal, assigned_issue)

    def test_only_assignee_or_manager_write_the_reply_channel(self, guard, assigned_issue, reporter, agent_a, manager):
        assert guard.can_write(agent_a, assigned_issue, internal=False)
        assert guard.can_write(manager, assigned_issue, internal=False)
        assert not guard.can_write(reporter, assigned_issue, internal=False)

    def test_reporter_posts_through_reply_path(self, guard, assigned_issue, reporter, other_employee):
        assert guard.can_reporter_reply(reporter, assigned_issue)
        assert guard.can_post_external(reporter, assigned_issue)
        assert not guard.can_post_external(other_employee, assigned_issue)


class TestInternalChannel:

    def test_reporter_never_sees_internal(self, guard, assigned_issue, reporter):
        assert not guard.can_view(reporter, assigned_issue, internal=True)
        assert not guard.can_write(reporter, assigned_issue, internal=True)

    def test_reporter_who_manages_issues_still_excluded(self, guard, manager):
        own_issue = make_issue(reporter_id=manager.id)
        assert not guard.can_view(manager, own_issue, internal=True)

    def test_assignee_and_manager_read_and_write(self, guard, assigned_issue, agent_a, manager):
        for principal in (agent_a, manager):
            assert guard.can_view(principal, assigned_issue, internal=True)
            assert guard.can_write(principal, assigned_issue, internal=True)

    def test_previous_assignee_loses_access(self, guard, agent_a):
        reassigned = make_issue(assigned_to="agent-b", assigned_at=T0)
        assert not guard.can_view(agent_a, reassigned, internal=True)


class TestTerminalIssues:

    @pytest.mark.parametrize("status", [IssueStatus.RESOLVED, IssueStatus.CLOSED])
    def test_no_channel_accepts_writes(self, guard, status, reporter, agent_a, manager):
        extra = {"closed_at": T0} if status == IssueStatus.CLOSED else {}
        issue = make_issue(
            status=status,
            assigned_to="agent-a",
            assigned_at=T0,
            resolved_at=T0,
            reopenable_until=T0,
            **extra,
        )
        for principal in (agent_a, manager):
            assert not guard.can_write(principal, issue, internal=False)
            assert not guard.can_write(principal, issue, internal=True)
        assert not guard.can_post_external(reporter, issue)
        assert guard.can_view(reporter, issue)


class TestChannelAccess:

    def test_reporter_internal_channel_is_restricted(self, guard, assigned_issue, reporter):
        access = guard.channel_access(reporter, assigned_issue, CommentChannel.INTERNAL)
        assert access.restricted
        assert not access.can_write

    def test_reporter_external_channel_is_open(self, guard, assigned_issue, reporter):
        access = guard.channel_access(reporter, assigned_issue, CommentChannel.EXTERNAL)
        assert not access.restricted
        assert access.can_write
