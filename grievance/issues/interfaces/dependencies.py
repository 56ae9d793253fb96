"""
Issue API Dependencies
======================

FastAPI dependencies resolving the service container and the calling
principal.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from grievance.access.domain import Principal
from grievance.bootstrap import ServiceContainer
from grievance.core import AuthenticationException
from grievance.issues.application import AgentDirectory, AssignmentEngine, EscalationManager, IssueService

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container)
) -> Principal:
    """Resolve the bearer token; anything unverifiable is a 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationException("Missing bearer token")
    principal = container.principal_resolver.verify_token(credentials.credentials)
    if principal is None:
        raise AuthenticationException("Invalid or expired bearer token")
    return principal


def get_issue_service(container: ServiceContainer = Depends(get_container)) -> IssueService:
    return container.issue_service


def get_assignment_engine(container: ServiceContainer = Depends(get_container)) -> AssignmentEngine:
    return container.assignment_engine


def get_escalation_manager(container: ServiceContainer = Depends(get_container)) -> EscalationManager:
    return container.escalation_manager


def get_agent_directory(container: ServiceContainer = Depends(get_container)) -> AgentDirectory:
    return container.agent_directory
