"""
Notification Delivery
=====================

Outbound notifications to collaborators (a principal or a whole role).

- ``INotificationSink``: the delivery contract, no response required
- ``WebhookNotificationSink``: JSON webhook with circuit breaker and retry
- ``LoggingNotificationSink``: writes notifications to the log
- ``NotificationDispatcher``: schedules deliveries as background tasks so the
  request path never waits on them; failures are logged and dropped
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from grievance.config import Role, settings
from grievance.core import NotificationException
from grievance.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationTarget:
    """Either a single principal or every principal holding a role."""
    principal_id: Optional[str] = None
    role: Optional[Role] = None

    @classmethod
    def principal(cls, principal_id: str) -> "NotificationTarget":
        return cls(principal_id=principal_id)

    @classmethod
    def for_role(cls, role: Role) -> "NotificationTarget":
        return cls(role=role)

    def to_dict(self) -> Dict[str, Any]:
        if self.principal_id is not None:
            return {"principal_id": self.principal_id}
        return {"role": self.role.value if self.role else None}


@dataclass
class NotificationMessage:
    """Notification payload."""
    title: str
    body: str
    issue_id: Optional[str] = None
    kind: str = "info"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "issue_id": self.issue_id,
            "kind": self.kind,
            "created_at": self.created_at.isoformat(),
        }


class INotificationSink(ABC):
    """Interface for notification delivery."""

    @abstractmethod
    async def notify(self, target: NotificationTarget, message: NotificationMessage) -> None:
        """Deliver a notification. May raise; callers treat it as best-effort."""

    async def close(self) -> None:
        """Release resources held by the sink."""


class LoggingNotificationSink(INotificationSink):
    """Sink used when no webhook is configured."""

    async def notify(self, target: NotificationTarget, message: NotificationMessage) -> None:
        logger.info(
            "Notification",
            extra={"target": target.to_dict(), **message.to_dict()}
        )


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotificationSink(INotificationSink):
    """
    Webhook client with circuit breaker and retry logic.

    Posts ``{"target": ..., "notification": ...}`` as JSON. Retries with
    exponential backoff, then records a breaker failure and raises.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 3,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._url = url
        self._timeout = timeout_seconds or settings.notification_timeout_seconds
        self._max_retries = max_retries
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def notify(self, target: NotificationTarget, message: NotificationMessage) -> None:
        if not self._circuit_breaker.allow_request():
            raise NotificationException("circuit open, notification skipped", {"issue_id": message.issue_id})

        payload = {"target": target.to_dict(), "notification": message.to_dict()}
        last_error: Optional[str] = None

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=payload)
                if 200 <= response.status_code < 300:
                    self._circuit_breaker.record_success()
                    return
                last_error = f"status {response.status_code}"
                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    "Notification webhook call failed",
                    extra={"error": str(e), "attempt": attempt + 1, "issue_id": message.issue_id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        raise NotificationException(
            f"delivery failed after {self._max_retries} attempts",
            {"issue_id": message.issue_id, "last_error": last_error}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class NotificationDispatcher:
    """
    Fire-and-forget front for a sink.

    ``dispatch`` schedules delivery on the running loop and returns
    immediately. Each delivery is attempted once per dispatch; errors are
    logged and swallowed.
    """

    def __init__(self, sink: INotificationSink):
        self._sink = sink
        self._pending: Set[asyncio.Task] = set()

    @property
    def sink(self) -> INotificationSink:
        return self._sink

    def dispatch(self, target: NotificationTarget, message: NotificationMessage) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(target, message))
        except RuntimeError:
            logger.warning(
                "No running event loop, notification dropped",
                extra={"issue_id": message.issue_id, "title": message.title}
            )
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, target: NotificationTarget, message: NotificationMessage) -> None:
        try:
            await self._sink.notify(target, message)
        except Exception as e:
            logger.warning(
                "Notification delivery failed",
                extra={
                    "target": target.to_dict(),
                    "issue_id": message.issue_id,
                    "error": str(e),
                }
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self._sink.close()


def build_notification_sink() -> INotificationSink:
    """Webhook sink when configured, otherwise the logging sink."""
    if settings.notification_webhook_url:
        return WebhookNotificationSink(settings.notification_webhook_url)
    return LoggingNotificationSink()
