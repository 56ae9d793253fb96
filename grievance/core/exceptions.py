"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Every rejected action maps to one specific exception so the caller can
render an actionable message. Each class carries a stable ``error_code``
and the HTTP status the interface layer answers with.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    error_code = "APPLICATION_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    error_code = "DOMAIN_ERROR"
    status_code = 409


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""

    error_code = "REPOSITORY_ERROR"


class StaleVersionError(RepositoryException):
    """
    Raised by a repository when the stored version no longer matches.

    Internal only: application services retry on it and surface
    ``ConflictException`` once retries are exhausted.
    """

    error_code = "STALE_VERSION"
    status_code = 409

    def __init__(self, issue_id: str, expected_version: int):
        self.issue_id = issue_id
        self.expected_version = expected_version
        super().__init__(
            f"Issue {issue_id} changed since version {expected_version}",
            {"issue_id": issue_id, "expected_version": expected_version}
        )


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class AuthenticationException(ApplicationException):
    """No principal could be resolved from the request."""

    error_code = "UNAUTHENTICATED"
    status_code = 401


class PermissionDeniedException(ApplicationException):
    """Principal lacks the capability required for an action."""

    error_code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(
        self,
        message: str,
        principal_id: Optional[str] = None,
        required: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.principal_id = principal_id
        self.required = required
        merged = {"principal_id": principal_id, "required": required}
        merged.update(details or {})
        super().__init__(message, merged)


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidTransitionException(DomainException):
    """Requested status edge is not in the transition table."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, issue_id: str, from_status: str, to_status: str, reason: Optional[str] = None):
        self.issue_id = issue_id
        self.from_status = from_status
        self.to_status = to_status
        message = f"Issue {issue_id} cannot move from {from_status} to {to_status}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            {"issue_id": issue_id, "from_status": from_status, "to_status": to_status}
        )


class ReopenWindowExpiredException(DomainException):
    """Reopen attempted after the grace window closed."""

    error_code = "REOPEN_WINDOW_EXPIRED"

    def __init__(self, issue_id: str, reopenable_until=None):
        self.issue_id = issue_id
        self.reopenable_until = reopenable_until
        super().__init__(
            f"Issue {issue_id} can no longer be reopened",
            {
                "issue_id": issue_id,
                "reopenable_until": reopenable_until.isoformat() if reopenable_until else None,
            }
        )


class AlreadyMaxPriorityException(DomainException):
    """Escalation attempted on an issue already at the highest priority."""

    error_code = "ALREADY_MAX_PRIORITY"

    def __init__(self, issue_id: str, priority: str):
        self.issue_id = issue_id
        super().__init__(
            f"Issue {issue_id} is already at the highest priority ({priority})",
            {"issue_id": issue_id, "priority": priority}
        )


class NoEligibleAgentException(DomainException):
    """Auto-assignment found nobody able to take the issue."""

    error_code = "NO_ELIGIBLE_AGENT"

    def __init__(self, issue_id: str, priority: str, details: Optional[dict] = None):
        self.issue_id = issue_id
        merged = {"issue_id": issue_id, "priority": priority}
        merged.update(details or {})
        super().__init__(
            f"No eligible agent available for issue {issue_id} at priority {priority}",
            merged
        )


class ConflictException(DomainException):
    """Optimistic-lock retries exhausted."""

    error_code = "CONFLICT"

    def __init__(self, issue_id: str, attempts: int):
        self.issue_id = issue_id
        self.attempts = attempts
        super().__init__(
            f"Issue {issue_id} was modified concurrently; gave up after {attempts} attempts",
            {"issue_id": issue_id, "attempts": attempts}
        )


class AuditWriteFailure(ApplicationException):
    """Audit entry could not be persisted. Logged, never raised to callers."""

    error_code = "AUDIT_WRITE_FAILURE"


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    error_code = "CONFIGURATION_ERROR"


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """Exception for notification delivery failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Sink", message, details)
