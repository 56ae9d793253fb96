"""
SLA Infrastructure Layer
========================

External adapters for the SLA context.

Contains:
- SLAPolicyManager: YAML policy with watchdog hot-reload
- SLAScheduler: APScheduler wrapper for the breach monitor
"""

from grievance.sla.infrastructure.external import (
    PolicyFileHandler,
    SLAPolicyManager,
    SLAScheduler,
)

__all__ = [
    "PolicyFileHandler",
    "SLAPolicyManager",
    "SLAScheduler",
]
