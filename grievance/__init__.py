"""
Grievance Service
=================

Issue lifecycle and access-control engine for the internal grievance
platform: permissions, comment visibility, status transitions, SLA clocks,
escalation and workload-aware assignment.
"""

__version__ = "1.0.0"
