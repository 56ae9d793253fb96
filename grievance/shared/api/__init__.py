"""
Shared API
==========

Middleware and exception handlers shared by every router.
"""

from grievance.shared.api.middleware import (
    CorrelationIDMiddleware,
    MetricsMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    validation_exception_handler,
    global_exception_handler,
)

__all__ = [
    "CorrelationIDMiddleware",
    "MetricsMiddleware",
    "LoggingMiddleware",
    "application_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
]
