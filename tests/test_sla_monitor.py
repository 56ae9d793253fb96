"""Tests for the background breach monitor and the policy file manager."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from grievance.bootstrap import Repositories, build_container
from grievance.config import AuditAction, IssueStatus, Priority, SLAType
from grievance.core import ConfigurationException
from grievance.issues.infrastructure import (
    InMemoryAgentRepository,
    InMemoryAuditRepository,
    InMemoryCommentRepository,
    InMemoryIssueRepository,
)
from grievance.sla.application import SLAMonitorService
from grievance.sla.domain import SLAClock
from grievance.sla.infrastructure import SLAPolicyManager, SLAScheduler

from tests.conftest import T0, make_issue


def monitor_with_auto_escalation(container, clock):
    return SLAMonitorService(
        container.repositories.issues,
        container.sla_clock,
        audit_trail=container.audit_trail,
        escalation_manager=container.escalation_manager,
        notifier=container.notifier,
        auto_escalate=True,
        clock=clock,
    )


class TestSweep:

    async def test_nothing_breached(self, container, open_issue, clock):
        clock.advance(hours=1)

        summary = await container.sla_monitor.sweep()

        assert summary == {
            "issues_evaluated": 1,
            "breaches_detected": 0,
            "notifications_sent": 0,
            "escalated": 0,
            "errors": 0,
        }
        assert container.sla_monitor.last_run_at == clock.now

    async def test_breach_reported_once(self, container, open_issue, manager, clock, sink):
        clock.advance(hours=9)

        first = await container.sla_monitor.sweep()
        second = await container.sla_monitor.sweep()
        await container.notifier.drain()

        assert first["breaches_detected"] == 1
        assert first["notifications_sent"] == 1
        assert second["breaches_detected"] == 0

        breach_entries = [
            entry for entry in await container.issue_service.audit_log(open_issue.id, manager)
            if entry.action == AuditAction.SLA_BREACHED
        ]
        assert len(breach_entries) == 1
        assert breach_entries[0].actor_id == "system"
        assert breach_entries[0].details["sla_type"] == SLAType.FIRST_RESPONSE.value

        breach_messages = [(t, m) for t, m in sink.sent if m.kind == "sla_breach"]
        assert len(breach_messages) == 1
        assert breach_messages[0][0].to_dict() == {"role": "manager"}

    async def test_later_clock_is_a_new_breach(self, container, open_issue, clock):
        clock.advance(hours=9)
        await container.sla_monitor.sweep()

        clock.advance(hours=90)
        summary = await container.sla_monitor.sweep()

        assert summary["breaches_detected"] == 1

    async def test_assignee_is_notified(self, container, open_issue, two_agents, manager, clock, sink):
        await container.assignment_engine.assign(open_issue.id, "agent-a", manager)
        clock.advance(hours=5)

        await container.sla_monitor.sweep()
        await container.notifier.drain()

        breach = [t.to_dict() for t, m in sink.sent if m.kind == "sla_breach"]
        assert breach == [{"principal_id": "agent-a"}]

    async def test_terminal_issues_are_not_swept(self, container, open_issue, manager, clock):
        clock.advance(hours=9)
        await container.issue_service.transition(open_issue.id, IssueStatus.RESOLVED, manager, "fixed")

        summary = await container.sla_monitor.sweep()

        assert summary["issues_evaluated"] == 0


class TestAutoEscalation:

    async def test_resolution_breach_escalates_one_step(self, container, open_issue, two_agents, manager, clock):
        await container.assignment_engine.assign(open_issue.id, "agent-a", manager)
        monitor = monitor_with_auto_escalation(container, clock)
        clock.advance(hours=97)

        first = await monitor.sweep()
        second = await monitor.sweep()

        assert first["escalated"] == 1
        assert second["escalated"] == 0
        issue = await container.issue_service.get_issue(open_issue.id, manager)
        assert issue.priority == Priority.HIGH
        assert issue.status == IssueStatus.ESCALATED
        entry = [
            e for e in await container.issue_service.audit_log(open_issue.id, manager)
            if e.action == AuditAction.ESCALATED
        ][0]
        assert entry.actor_id == "system"
        assert entry.details["reason"] == "Resolution SLA breached"

    async def test_critical_issue_is_not_escalated(self, container, reporter, clock):
        issue = await container.issue_service.create_issue(
            reporter, type_id="security", description="Badge cloned", priority=Priority.CRITICAL
        )
        monitor = monitor_with_auto_escalation(container, clock)
        clock.advance(hours=25)

        summary = await monitor.sweep()

        assert summary["escalated"] == 0
        assert summary["breaches_detected"] == 2
        assert issue.priority == Priority.CRITICAL

    async def test_first_response_breach_alone_does_not_escalate(self, container, open_issue, clock):
        monitor = monitor_with_auto_escalation(container, clock)
        clock.advance(hours=9)

        summary = await monitor.sweep()

        assert summary["escalated"] == 0

    async def test_database_error_is_counted_and_sweep_continues(self, settings, sink, clock, reporter):
        class FailingSaveRepository(InMemoryIssueRepository):
            def __init__(self):
                super().__init__()
                self.failing_ids = set()

            async def save(self, issue, expected_version):
                if issue.id in self.failing_ids:
                    raise SQLAlchemyError("database is locked")
                return await super().save(issue, expected_version)

        issues = FailingSaveRepository()
        container = build_container(
            settings=settings,
            repositories=Repositories(
                issues=issues,
                comments=InMemoryCommentRepository(),
                audit=InMemoryAuditRepository(),
                agents=InMemoryAgentRepository(),
            ),
            sink=sink,
            clock=clock,
        )
        broken = await container.issue_service.create_issue(reporter, type_id="it", description="Laptop")
        healthy = await container.issue_service.create_issue(reporter, type_id="it", description="Monitor")
        issues.failing_ids.add(broken.id)
        monitor = monitor_with_auto_escalation(container, clock)
        clock.advance(hours=97)

        summary = await monitor.sweep()

        assert summary["issues_evaluated"] == 2
        assert summary["errors"] == 1
        assert summary["escalated"] == 1
        assert (await issues.get(healthy.id)).priority == Priority.HIGH
        assert (await issues.get(broken.id)).priority == Priority.MEDIUM


POLICY_YAML = """
warning_percent: 75
thresholds:
  critical:
    first_response: 30
"""


class TestPolicyManager:

    def test_missing_file_means_defaults(self, tmp_path):
        manager = SLAPolicyManager()
        policy = manager.load(tmp_path / "absent.yaml")

        assert manager.is_loaded
        assert policy.get_minutes(Priority.MEDIUM, SLAType.FIRST_RESPONSE) == 480

    def test_load_and_reload(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)

        assert manager.get_policy().warning_percent == 75
        assert manager.get_policy().get_minutes(Priority.CRITICAL, SLAType.FIRST_RESPONSE) == 30

        path.write_text("thresholds:\n  critical:\n    first_response: 45\n")
        assert manager.reload()
        assert manager.get_policy().get_minutes(Priority.CRITICAL, SLAType.FIRST_RESPONSE) == 45
        assert manager.get_policy().warning_percent == 80

    @pytest.mark.parametrize("content", [
        "thresholds: [unclosed",
        "thresholds:\n  high:\n    resolution: -5\n",
        "- just\n- a list\n",
    ])
    def test_bad_reload_keeps_previous_policy(self, tmp_path, content):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)

        path.write_text(content)

        assert manager.reload() is False
        assert manager.get_policy().get_minutes(Priority.CRITICAL, SLAType.FIRST_RESPONSE) == 30

    def test_malformed_file_at_startup_is_a_configuration_error(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text("thresholds: [unclosed")

        with pytest.raises(ConfigurationException):
            SLAPolicyManager().load(path)

    def test_unloaded_manager_refuses_to_serve(self):
        manager = SLAPolicyManager()
        assert manager.reload() is False
        with pytest.raises(RuntimeError):
            manager.get_policy()

    def test_clock_follows_reloaded_policy(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)
        clock = SLAClock(manager)
        issue = make_issue(priority=Priority.CRITICAL)

        assert clock.breach_flags(issue, T0 + timedelta(minutes=40)).first_response_breached

        path.write_text("thresholds:\n  critical:\n    first_response: 60\n")
        manager.reload()
        assert not clock.breach_flags(issue, T0 + timedelta(minutes=40)).first_response_breached

    def test_watching_lifecycle(self, tmp_path):
        path = tmp_path / "sla_policy.yaml"
        path.write_text(POLICY_YAML)
        manager = SLAPolicyManager()
        manager.load(path)

        manager.start_watching()
        try:
            assert manager.is_watching
        finally:
            manager.stop_watching()
        assert not manager.is_watching


class TestScheduler:

    async def test_start_and_stop(self):
        calls = []

        async def job():
            calls.append(1)

        scheduler = SLAScheduler(interval_seconds=3600)
        await scheduler.start(job)
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running
