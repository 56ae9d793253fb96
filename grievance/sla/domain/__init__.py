"""
SLA Domain Layer
================

Domain layer for SLA timing.

Contains:
- Entities: BreachFlags, SLAClockStatus, SLAStatus
- Value Objects: SLAPolicy, WorkingHoursConfig, WorkingCalendar
- Domain Services: SLAClock

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from grievance.sla.domain.entities import BreachFlags, SLAClockStatus, SLAStatus
from grievance.sla.domain.value_objects import (
    DEFAULT_THRESHOLDS,
    SLAPolicy,
    WorkingHoursConfig,
    WorkingCalendar,
)
from grievance.sla.domain.clock import SLAClock, SLASubject

__all__ = [
    # Entities
    "BreachFlags",
    "SLAClockStatus",
    "SLAStatus",
    # Value Objects
    "DEFAULT_THRESHOLDS",
    "SLAPolicy",
    "WorkingHoursConfig",
    "WorkingCalendar",
    # Domain Services
    "SLAClock",
    "SLASubject",
]
