"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Also holds the closed enumerations shared by every bounded context
(priorities, statuses, roles, permissions).
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="grievance-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/grievances",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    use_in_memory_store: bool = Field(
        default=False,
        description="Wire in-memory repositories instead of the database (local development)"
    )

    # ========== Authentication ==========
    jwt_secret: str = Field(default="change-me", description="HMAC secret for bearer tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_issuer: Optional[str] = Field(default=None, description="Expected token issuer")
    jwt_audience: Optional[str] = Field(default=None, description="Expected token audience")

    # ========== Access Control ==========
    restricted_emails: List[str] = Field(
        default_factory=list,
        description="Emails that are hard-denied mobile access regardless of role"
    )

    # ========== Issue Lifecycle ==========
    reopen_window_days: int = Field(
        default=7,
        description="Days after resolve/close during which an issue may be reopened",
        ge=0
    )
    max_conflict_retries: int = Field(
        default=3,
        description="Optimistic-lock retries before surfacing a conflict",
        ge=1,
        le=10
    )
    default_agent_capacity: int = Field(
        default=10,
        description="Hard cap on active issues per agent",
        ge=1
    )

    # ========== SLA Configuration ==========
    sla_policy_path: Path = Field(
        default=Path("sla_policy.yaml"),
        description="Path to SLA policy YAML file"
    )
    sla_monitor_interval: int = Field(
        default=300,
        description="Seconds between SLA sweeps (0 disables the monitor)",
        ge=0
    )
    sla_auto_escalate: bool = Field(
        default=False,
        description="Escalate resolution-breached issues from the SLA monitor"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook URL receiving notification payloads"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("restricted_emails")
    @classmethod
    def normalize_emails(cls, v: List[str]) -> List[str]:
        return [email.strip().lower() for email in v if email.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str, Enum):
    """Issue priority levels, lowest severity first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return PRIORITY_ORDER.index(self)

    def covers(self, other: "Priority") -> bool:
        """True when this level is at least as severe as ``other``."""
        return self.rank >= other.rank


class IssueStatus(str, Enum):
    """Issue lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"


class Role(str, Enum):
    """Fixed set of principal roles."""
    EMPLOYEE = "employee"
    AGENT = "agent"
    MANAGER = "manager"
    ADMIN = "admin"
    SECURITY_ADMIN = "security-admin"


class Permission(str, Enum):
    """Closed capability set checked by the permission model."""
    VIEW_DASHBOARD = "view:dashboard"
    MANAGE_USERS = "manage:users"
    MANAGE_ISSUES = "manage:issues"
    MANAGE_ANALYTICS = "manage:analytics"
    MANAGE_SETTINGS = "manage:settings"
    ACCESS_SECURITY = "access:security"


class Surface(str, Enum):
    """Client surface a role is bound to. A role is never both."""
    DASHBOARD = "dashboard"
    MOBILE = "mobile"


class SLAType(str, Enum):
    """Types of SLA clocks."""
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"
    ASSIGNEE_RESPONSE = "assignee_response"


class SLAState(str, Enum):
    """SLA status states."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    REOPENED = "reopened"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    ESCALATED = "escalated"
    REROUTE_FAILED = "reroute_failed"
    COMMENT_ADDED = "comment_added"
    INTERNAL_COMMENT_ADDED = "internal_comment_added"
    SLA_BREACHED = "sla_breached"


# ========== Lists for validation ==========

PRIORITY_ORDER = [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]
MAX_PRIORITY = PRIORITY_ORDER[-1]

ACTIVE_STATUSES = frozenset({IssueStatus.OPEN, IssueStatus.IN_PROGRESS, IssueStatus.ESCALATED})
TERMINAL_STATUSES = frozenset({IssueStatus.RESOLVED, IssueStatus.CLOSED})

VALID_SLA_TYPES = [SLAType.FIRST_RESPONSE, SLAType.RESOLUTION, SLAType.ASSIGNEE_RESPONSE]
