"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator

from grievance.config import Priority, SLAType, PRIORITY_ORDER, VALID_SLA_TYPES


# Minutes per clock, by priority.
DEFAULT_THRESHOLDS: Dict[str, Dict[str, int]] = {
    Priority.CRITICAL.value: {"first_response": 120, "resolution": 1440, "assignee_response": 60},
    Priority.HIGH.value: {"first_response": 240, "resolution": 2880, "assignee_response": 120},
    Priority.MEDIUM.value: {"first_response": 480, "resolution": 5760, "assignee_response": 240},
    Priority.LOW.value: {"first_response": 1440, "resolution": 10080, "assignee_response": 720},
}


class WorkingHoursConfig(BaseModel):
    """
    Business calendar used when SLA time counts working hours only.

    ``working_days`` uses ``date.weekday()`` numbering (Monday is 0).
    """
    enabled: bool = Field(default=False, description="Count working hours only")
    start_hour: int = Field(default=9, ge=0, le=23)
    end_hour: int = Field(default=17, ge=1, le=24)
    working_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5])
    holidays: List[date] = Field(default_factory=list)
    timezone: str = Field(default="UTC", description="IANA zone the calendar is expressed in")

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("working_days cannot be empty")
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"invalid weekday {day}")
        return sorted(set(v))

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        ZoneInfo(v)
        return v

    @model_validator(mode="after")
    def validate_hours(self) -> "WorkingHoursConfig":
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        return self


class SLAPolicy(BaseModel):
    """
    SLA policy loaded from YAML.

    The threshold table is made total over every priority and clock type by
    the validator, so lookups never miss.
    """
    thresholds: Dict[str, Dict[str, int]] = Field(
        default_factory=dict,
        validate_default=True,
        description="Threshold minutes by priority and clock type"
    )
    warning_percent: int = Field(
        default=80,
        ge=1,
        le=100,
        description="Elapsed share of a threshold at which a clock is at risk"
    )
    working_hours: WorkingHoursConfig = Field(default_factory=WorkingHoursConfig)

    @field_validator("thresholds")
    @classmethod
    def validate_thresholds(cls, v: Dict[str, Dict[str, int]]) -> Dict[str, Dict[str, int]]:
        """Fill missing priorities and clock types with defaults."""
        for priority in PRIORITY_ORDER:
            row = dict(v.get(priority.value) or {})
            for sla_type in VALID_SLA_TYPES:
                if sla_type.value not in row:
                    row[sla_type.value] = DEFAULT_THRESHOLDS[priority.value][sla_type.value]
                elif row[sla_type.value] <= 0:
                    raise ValueError(
                        f"threshold for {priority.value}/{sla_type.value} must be positive"
                    )
            v[priority.value] = row
        return v

    def get_minutes(self, priority: Priority, sla_type: SLAType) -> int:
        return self.thresholds[Priority(priority).value][SLAType(sla_type).value]

    def get_threshold(self, priority: Priority, sla_type: SLAType) -> timedelta:
        return timedelta(minutes=self.get_minutes(priority, sla_type))

    def calendar(self) -> "WorkingCalendar":
        return WorkingCalendar(self.working_hours)


class WorkingCalendar:
    """
    Measures elapsed SLA time and projects deadlines.

    Wall-clock time when working hours are disabled; otherwise only the
    part of each working day between ``start_hour`` and ``end_hour`` counts,
    skipping non-working weekdays and holidays.
    """

    def __init__(self, config: WorkingHoursConfig):
        self._config = config
        self._zone = ZoneInfo(config.timezone)
        self._holidays = frozenset(config.holidays)

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self._config.working_days and day not in self._holidays

    def _window(self, day: date):
        start = datetime.combine(day, time(self._config.start_hour), tzinfo=self._zone)
        if self._config.end_hour == 24:
            end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=self._zone)
        else:
            end = datetime.combine(day, time(self._config.end_hour), tzinfo=self._zone)
        return start, end

    def elapsed(self, start: datetime, end: datetime) -> timedelta:
        """Counted time between two instants, never negative."""
        if end <= start:
            return timedelta(0)
        if not self._config.enabled:
            return end - start

        local_start = start.astimezone(self._zone)
        local_end = end.astimezone(self._zone)
        total = timedelta(0)
        day = local_start.date()
        while day <= local_end.date():
            if self.is_working_day(day):
                window_start, window_end = self._window(day)
                lo = max(window_start, local_start)
                hi = min(window_end, local_end)
                if hi > lo:
                    total += hi - lo
            day += timedelta(days=1)
        return total

    def deadline(self, start: datetime, duration: timedelta) -> datetime:
        """Instant at which ``duration`` of counted time has passed since ``start``."""
        if not self._config.enabled:
            return start + duration

        remaining = duration
        cursor = start.astimezone(self._zone)
        # Bounded: a working day exists in every week.
        for _ in range(3660):
            day = cursor.date()
            if self.is_working_day(day):
                window_start, window_end = self._window(day)
                lo = max(window_start, cursor)
                if lo < window_end:
                    available = window_end - lo
                    if remaining <= available:
                        return (lo + remaining).astimezone(start.tzinfo)
                    remaining -= available
            cursor = datetime.combine(day + timedelta(days=1), time(0), tzinfo=self._zone)
        raise ValueError("working calendar has no working time")
