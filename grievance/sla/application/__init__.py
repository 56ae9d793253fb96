"""
SLA Application Layer
=====================

Application services for SLA policy access and breach monitoring.
"""

from grievance.sla.application.services import (
    ISLAPolicyProvider,
    StaticSLAPolicyProvider,
    SLAMonitorService,
)

__all__ = [
    "ISLAPolicyProvider",
    "StaticSLAPolicyProvider",
    "SLAMonitorService",
]
