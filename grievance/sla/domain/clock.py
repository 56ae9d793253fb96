"""
SLA Clock
=========

Pure projection from an issue's recorded timestamps to breach flags and
per-clock status. No side effects.

Three clocks run per issue:

- first response: ``created_at`` until ``first_response_at``
- resolution: ``created_at`` until ``resolved_at``
- assignee response: ``assigned_at`` until ``assignee_responded_at``

A clock breaches when its counted elapsed time exceeds the policy threshold
for the issue priority. Open issues are evaluated live against ``now``.
Once an issue is resolved or closed, the flags frozen on it at that moment
are reported as facts and never recomputed.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional, Protocol

from grievance.config import IssueStatus, Priority, SLAState, SLAType, TERMINAL_STATUSES
from grievance.sla.domain.entities import BreachFlags, SLAClockStatus, SLAStatus
from grievance.sla.domain.value_objects import SLAPolicy, WorkingCalendar


class SLASubject(Protocol):
    """The timestamps of an issue the clock reads."""
    id: str
    priority: Priority
    status: IssueStatus
    created_at: datetime
    first_response_at: Optional[datetime]
    resolved_at: Optional[datetime]
    assigned_at: Optional[datetime]
    assignee_responded_at: Optional[datetime]
    sla_first_response_breached: Optional[bool]
    sla_resolution_breached: Optional[bool]
    sla_assignee_breached: Optional[bool]


class SLAPolicySource(Protocol):
    def get_policy(self) -> SLAPolicy:
        ...


class SLAClock:
    """Computes breach flags and clock status against the current policy."""

    def __init__(self, policy_source: SLAPolicySource):
        self._policy_source = policy_source

    @property
    def policy(self) -> SLAPolicy:
        return self._policy_source.get_policy()

    @staticmethod
    def _frozen_flags(issue: SLASubject) -> Optional[BreachFlags]:
        if issue.status not in TERMINAL_STATUSES or issue.sla_resolution_breached is None:
            return None
        return BreachFlags(
            first_response_breached=bool(issue.sla_first_response_breached),
            resolution_breached=bool(issue.sla_resolution_breached),
            assignee_breached=bool(issue.sla_assignee_breached),
            frozen=True,
        )

    def breach_flags(self, issue: SLASubject, now: datetime) -> BreachFlags:
        frozen = self._frozen_flags(issue)
        if frozen is not None:
            return frozen
        return self._evaluate(issue, now).flags

    def status(self, issue: SLASubject, now: datetime) -> SLAStatus:
        status = self._evaluate(issue, now)
        frozen = self._frozen_flags(issue)
        if frozen is None:
            return status

        def pin(clock: Optional[SLAClockStatus], breached: bool) -> Optional[SLAClockStatus]:
            if clock is None:
                return None
            return replace(
                clock,
                is_breached=breached,
                state=SLAState.BREACHED if breached else SLAState.MET,
                remaining_seconds=0.0,
            )

        return SLAStatus(
            issue_id=status.issue_id,
            evaluated_at=status.evaluated_at,
            first_response=pin(status.first_response, frozen.first_response_breached),
            resolution=pin(status.resolution, frozen.resolution_breached),
            assignee_response=pin(status.assignee_response, frozen.assignee_breached),
        )

    def freeze(self, issue: SLASubject, now: datetime) -> Dict[str, bool]:
        """Snapshot fields to store on an issue entering resolved/closed."""
        flags = self._evaluate(issue, now).flags
        return {
            "sla_first_response_breached": flags.first_response_breached,
            "sla_resolution_breached": flags.resolution_breached,
            "sla_assignee_breached": flags.assignee_breached,
        }

    def _evaluate(self, issue: SLASubject, now: datetime) -> SLAStatus:
        policy = self.policy
        calendar = policy.calendar()
        terminal_at = issue.resolved_at if issue.status in TERMINAL_STATUSES else None

        first_response = self._clock(
            policy, calendar, SLAType.FIRST_RESPONSE, issue.priority,
            started_at=issue.created_at,
            met_at=issue.first_response_at,
            stopped_at=terminal_at,
            now=now,
        )
        resolution = self._clock(
            policy, calendar, SLAType.RESOLUTION, issue.priority,
            started_at=issue.created_at,
            met_at=terminal_at,
            stopped_at=None,
            now=now,
        )
        assignee_response = None
        if issue.assigned_at is not None:
            assignee_response = self._clock(
                policy, calendar, SLAType.ASSIGNEE_RESPONSE, issue.priority,
                started_at=issue.assigned_at,
                met_at=issue.assignee_responded_at,
                stopped_at=terminal_at,
                now=now,
            )

        return SLAStatus(
            issue_id=issue.id,
            evaluated_at=now,
            first_response=first_response,
            resolution=resolution,
            assignee_response=assignee_response,
        )

    @staticmethod
    def _clock(
        policy: SLAPolicy,
        calendar: WorkingCalendar,
        sla_type: SLAType,
        priority: Priority,
        started_at: datetime,
        met_at: Optional[datetime],
        stopped_at: Optional[datetime],
        now: datetime
    ) -> SLAClockStatus:
        threshold = policy.get_threshold(priority, sla_type)
        end = met_at or stopped_at or now
        elapsed = calendar.elapsed(started_at, end)
        is_breached = elapsed > threshold
        percentage = elapsed / threshold * 100

        if met_at is not None or stopped_at is not None:
            state = SLAState.BREACHED if is_breached else SLAState.MET
            remaining = 0.0
        else:
            if is_breached:
                state = SLAState.BREACHED
            elif percentage >= policy.warning_percent:
                state = SLAState.AT_RISK
            else:
                state = SLAState.ON_TRACK
            remaining = max(0.0, (threshold - elapsed).total_seconds())

        return SLAClockStatus(
            sla_type=sla_type,
            threshold_minutes=policy.get_minutes(priority, sla_type),
            started_at=started_at,
            deadline=calendar.deadline(started_at, threshold),
            elapsed_seconds=elapsed.total_seconds(),
            remaining_seconds=remaining,
            percentage_elapsed=round(percentage, 2),
            is_breached=is_breached,
            state=state,
            met_at=met_at,
        )
