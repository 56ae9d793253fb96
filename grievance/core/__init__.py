"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from grievance.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    StaleVersionError,
    ValidationException,
    AuthenticationException,
    PermissionDeniedException,
    ResourceNotFoundException,
    InvalidTransitionException,
    ReopenWindowExpiredException,
    AlreadyMaxPriorityException,
    NoEligibleAgentException,
    ConflictException,
    AuditWriteFailure,
    ConfigurationException,
    ExternalServiceException,
    NotificationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "StaleVersionError",
    "ValidationException",
    "AuthenticationException",
    "PermissionDeniedException",
    "ResourceNotFoundException",
    "InvalidTransitionException",
    "ReopenWindowExpiredException",
    "AlreadyMaxPriorityException",
    "NoEligibleAgentException",
    "ConflictException",
    "AuditWriteFailure",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationException",
]
