"""
SLA Domain Entities
====================

Results produced by the SLA clock. Pure data, no infrastructure.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from grievance.config import SLAState, SLAType


@dataclass(frozen=True)
class BreachFlags:
    """The three breach facts reported alongside every issue."""
    first_response_breached: bool
    resolution_breached: bool
    assignee_breached: bool
    frozen: bool = False

    @property
    def any_breached(self) -> bool:
        return self.first_response_breached or self.resolution_breached or self.assignee_breached

    def breached_types(self) -> List[SLAType]:
        breached = []
        if self.first_response_breached:
            breached.append(SLAType.FIRST_RESPONSE)
        if self.resolution_breached:
            breached.append(SLAType.RESOLUTION)
        if self.assignee_breached:
            breached.append(SLAType.ASSIGNEE_RESPONSE)
        return breached

    def to_dict(self) -> Dict[str, bool]:
        return {
            "first_response_breached": self.first_response_breached,
            "resolution_breached": self.resolution_breached,
            "assignee_breached": self.assignee_breached,
            "frozen": self.frozen,
        }


@dataclass(frozen=True)
class SLAClockStatus:
    """
    State of one SLA clock.

    ``elapsed_seconds`` is counted time (working hours when enabled);
    ``remaining_seconds`` is zero once the clock is met or breached.
    """
    sla_type: SLAType
    threshold_minutes: int
    started_at: datetime
    deadline: datetime
    elapsed_seconds: float
    remaining_seconds: float
    percentage_elapsed: float
    is_breached: bool
    state: SLAState
    met_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "sla_type": self.sla_type.value,
            "threshold_minutes": self.threshold_minutes,
            "started_at": self.started_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "elapsed_seconds": self.elapsed_seconds,
            "remaining_seconds": self.remaining_seconds,
            "percentage_elapsed": self.percentage_elapsed,
            "is_breached": self.is_breached,
            "state": self.state.value,
            "met_at": self.met_at.isoformat() if self.met_at else None,
        }


@dataclass
class SLAStatus:
    """
    SLA view for an issue.

    The assignee-response clock is absent while the issue is unassigned.
    """

    issue_id: str
    evaluated_at: datetime
    first_response: SLAClockStatus
    resolution: SLAClockStatus
    assignee_response: Optional[SLAClockStatus] = None
    flags: BreachFlags = field(init=False)

    def __post_init__(self):
        self.flags = BreachFlags(
            first_response_breached=self.first_response.is_breached,
            resolution_breached=self.resolution.is_breached,
            assignee_breached=bool(self.assignee_response and self.assignee_response.is_breached),
        )

    def clocks(self) -> List[SLAClockStatus]:
        clocks = [self.first_response, self.resolution]
        if self.assignee_response is not None:
            clocks.append(self.assignee_response)
        return clocks

    @property
    def most_urgent_state(self) -> SLAState:
        """Get the most urgent SLA state."""
        states = [clock.state for clock in self.clocks()]
        if SLAState.BREACHED in states:
            return SLAState.BREACHED
        if SLAState.AT_RISK in states:
            return SLAState.AT_RISK
        if all(state == SLAState.MET for state in states):
            return SLAState.MET
        return SLAState.ON_TRACK

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "issue_id": self.issue_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "first_response": self.first_response.to_dict(),
            "resolution": self.resolution.to_dict(),
            "assignee_response": self.assignee_response.to_dict() if self.assignee_response else None,
            "overall": {
                "state": self.most_urgent_state.value,
                "is_any_breached": self.flags.any_breached,
            },
        }
