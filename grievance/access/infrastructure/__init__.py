"""
Access Infrastructure Layer
===========================
"""

from grievance.access.infrastructure.jwt_resolver import JWTPrincipalResolver, issue_token

__all__ = ["JWTPrincipalResolver", "issue_token"]
