"""Tests for SLA policy, breach clocks and the working-hours calendar."""
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from grievance.config import IssueStatus, Priority, SLAState, SLAType
from grievance.sla.application import StaticSLAPolicyProvider
from grievance.sla.domain import DEFAULT_THRESHOLDS, SLAClock, SLAPolicy, WorkingCalendar, WorkingHoursConfig

from tests.conftest import T0, make_issue


def clock_for(policy=None) -> SLAClock:
    return SLAClock(StaticSLAPolicyProvider(policy))


class TestPolicy:

    def test_defaults_cover_every_priority_and_clock(self):
        policy = SLAPolicy()
        for priority in Priority:
            for sla_type in SLAType:
                assert policy.get_minutes(priority, sla_type) == DEFAULT_THRESHOLDS[priority.value][sla_type.value]

    def test_partial_table_is_filled_with_defaults(self):
        policy = SLAPolicy(thresholds={"critical": {"resolution": 600}})

        assert policy.get_minutes(Priority.CRITICAL, SLAType.RESOLUTION) == 600
        assert policy.get_minutes(Priority.CRITICAL, SLAType.FIRST_RESPONSE) == 120
        assert policy.get_minutes(Priority.LOW, SLAType.ASSIGNEE_RESPONSE) == 720

    def test_non_positive_threshold_is_rejected(self):
        with pytest.raises(ValidationError):
            SLAPolicy(thresholds={"high": {"first_response": 0}})

    def test_working_hours_must_be_ordered(self):
        with pytest.raises(ValidationError):
            WorkingHoursConfig(enabled=True, start_hour=17, end_hour=9)


class TestBreachFlags:

    def test_threshold_is_exclusive(self):
        clock = clock_for()
        issue = make_issue(priority=Priority.MEDIUM)

        at_limit = clock.breach_flags(issue, T0 + timedelta(minutes=480))
        past_limit = clock.breach_flags(issue, T0 + timedelta(minutes=480, seconds=1))

        assert not at_limit.first_response_breached
        assert past_limit.first_response_breached
        assert not past_limit.resolution_breached

    def test_first_response_met_late_stays_breached(self):
        clock = clock_for()
        responded = T0 + timedelta(hours=3)
        issue = make_issue(
            priority=Priority.CRITICAL,
            status=IssueStatus.IN_PROGRESS,
            first_response_at=responded,
            updated_at=responded,
        )

        flags = clock.breach_flags(issue, T0 + timedelta(hours=4))

        assert flags.first_response_breached
        assert flags.breached_types() == [SLAType.FIRST_RESPONSE]

    def test_first_response_met_in_time_never_breaches(self):
        clock = clock_for()
        responded = T0 + timedelta(minutes=30)
        issue = make_issue(
            priority=Priority.CRITICAL,
            status=IssueStatus.IN_PROGRESS,
            first_response_at=responded,
            updated_at=responded,
        )

        flags = clock.breach_flags(issue, T0 + timedelta(hours=20))

        assert not flags.first_response_breached
        assert not flags.any_breached

    def test_assignee_clock_starts_at_assignment(self):
        clock = clock_for()
        assigned_at = T0 + timedelta(hours=2)
        issue = make_issue(priority=Priority.CRITICAL, assigned_to="agent-a", assigned_at=assigned_at)

        assert not clock.breach_flags(issue, assigned_at + timedelta(minutes=60)).assignee_breached
        assert clock.breach_flags(issue, assigned_at + timedelta(minutes=61)).assignee_breached

    def test_unassigned_issue_has_no_assignee_clock(self):
        status = clock_for().status(make_issue(), T0 + timedelta(days=30))

        assert status.assignee_response is None
        assert not status.flags.assignee_breached

    def test_terminal_issue_reports_frozen_facts(self):
        clock = clock_for()
        resolved_at = T0 + timedelta(hours=30)
        issue = make_issue(
            priority=Priority.CRITICAL,
            status=IssueStatus.RESOLVED,
            first_response_at=T0 + timedelta(minutes=10),
            resolved_at=resolved_at,
            updated_at=resolved_at,
            reopenable_until=resolved_at + timedelta(days=7),
            sla_first_response_breached=False,
            sla_resolution_breached=False,
            sla_assignee_breached=False,
        )

        flags = clock.breach_flags(issue, T0 + timedelta(days=365))

        assert flags.frozen
        assert not flags.resolution_breached

    def test_terminal_issue_without_snapshot_stops_at_resolution(self):
        clock = clock_for()
        resolved_at = T0 + timedelta(hours=2)
        issue = make_issue(
            priority=Priority.CRITICAL,
            status=IssueStatus.RESOLVED,
            first_response_at=resolved_at,
            resolved_at=resolved_at,
            updated_at=resolved_at,
            reopenable_until=resolved_at + timedelta(days=7),
        )

        flags = clock.breach_flags(issue, T0 + timedelta(days=30))

        assert not flags.frozen
        assert not flags.resolution_breached

    def test_freeze_snapshots_current_flags(self):
        clock = clock_for()
        issue = make_issue(priority=Priority.CRITICAL)

        snapshot = clock.freeze(issue, T0 + timedelta(hours=25))

        assert snapshot == {
            "sla_first_response_breached": True,
            "sla_resolution_breached": True,
            "sla_assignee_breached": False,
        }


class TestClockStatus:

    def test_states_progress_on_track_at_risk_breached(self):
        clock = clock_for()
        issue = make_issue(priority=Priority.MEDIUM)

        early = clock.status(issue, T0 + timedelta(hours=1)).first_response
        risky = clock.status(issue, T0 + timedelta(minutes=390)).first_response
        late = clock.status(issue, T0 + timedelta(hours=9)).first_response

        assert early.state == SLAState.ON_TRACK
        assert early.deadline == T0 + timedelta(minutes=480)
        assert early.remaining_seconds == 7 * 3600
        assert risky.state == SLAState.AT_RISK
        assert late.state == SLAState.BREACHED
        assert late.remaining_seconds == 0

    def test_warning_percent_comes_from_policy(self):
        clock = clock_for(SLAPolicy(warning_percent=50))
        issue = make_issue(priority=Priority.MEDIUM)

        assert clock.status(issue, T0 + timedelta(hours=4)).first_response.state == SLAState.AT_RISK

    def test_met_clock(self):
        clock = clock_for()
        responded = T0 + timedelta(hours=1)
        issue = make_issue(status=IssueStatus.IN_PROGRESS, first_response_at=responded, updated_at=responded)

        status = clock.status(issue, T0 + timedelta(hours=2))

        assert status.first_response.state == SLAState.MET
        assert status.first_response.met_at == responded
        assert status.to_dict()["first_response"]["state"] == "met"


class TestWorkingCalendar:

    @pytest.fixture
    def calendar(self):
        return WorkingCalendar(WorkingHoursConfig(
            enabled=True,
            start_hour=9,
            end_hour=17,
            working_days=[0, 1, 2, 3, 4],
        ))

    def test_disabled_calendar_is_wall_clock(self):
        calendar = WorkingCalendar(WorkingHoursConfig())
        assert calendar.elapsed(T0, T0 + timedelta(days=3)) == timedelta(days=3)
        assert calendar.deadline(T0, timedelta(hours=5)) == T0 + timedelta(hours=5)

    def test_weekend_and_nights_do_not_count(self, calendar):
        friday_late = datetime(2026, 2, 27, 16, 0, tzinfo=timezone.utc)
        monday_morning = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

        assert calendar.elapsed(friday_late, monday_morning) == timedelta(hours=2)

    def test_deadline_rolls_over_the_weekend(self, calendar):
        friday_late = datetime(2026, 2, 27, 16, 0, tzinfo=timezone.utc)

        assert calendar.deadline(friday_late, timedelta(hours=2)) == datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

    def test_holidays_are_skipped(self):
        calendar = WorkingCalendar(WorkingHoursConfig(
            enabled=True,
            working_days=[0, 1, 2, 3, 4],
            holidays=[date(2026, 3, 2)],
        ))
        friday_late = datetime(2026, 2, 27, 16, 0, tzinfo=timezone.utc)
        tuesday_morning = datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc)

        assert not calendar.is_working_day(date(2026, 3, 2))
        assert calendar.elapsed(friday_late, tuesday_morning) == timedelta(hours=2)

    def test_reversed_interval_is_zero(self, calendar):
        assert calendar.elapsed(T0, T0 - timedelta(hours=1)) == timedelta(0)

    def test_clock_uses_working_time_when_enabled(self):
        policy = SLAPolicy(working_hours=WorkingHoursConfig(enabled=True, working_days=[0, 1, 2, 3, 4]))
        clock = clock_for(policy)
        friday_late = datetime(2026, 2, 27, 16, 0, tzinfo=timezone.utc)
        issue = make_issue(priority=Priority.CRITICAL, created_at=friday_late, updated_at=friday_late)

        # 1h on Friday + 1h on Monday = exactly the 120 minute threshold
        flags = clock.breach_flags(issue, datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc))

        assert not flags.first_response_breached
