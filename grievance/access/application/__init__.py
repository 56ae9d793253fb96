"""
Access Application Layer
========================

Contracts the access context consumes from collaborators.
"""

from grievance.access.application.services import IPrincipalResolver

__all__ = ["IPrincipalResolver"]
