"""
Shared Service Plumbing
=======================

Optimistic read-modify-write for issue mutations, plus the lookups and
notification helpers every issue service needs.

A mutation reads the issue with its version, computes the new state and
saves it only if the version is unchanged. On a version mismatch the whole
operation is retried from the read, up to a bounded number of attempts,
after which ``ConflictException`` is raised.
"""

from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from grievance.config import Role
from grievance.core import ConflictException, ResourceNotFoundException, StaleVersionError
from grievance.core.clock import Clock, utc_now
from grievance.issues.application.repositories import IIssueRepository
from grievance.issues.domain import Issue
from grievance.shared.infrastructure.logging import get_logger
from grievance.shared.infrastructure.notifications import (
    NotificationDispatcher,
    NotificationMessage,
    NotificationTarget,
)

logger = get_logger(__name__)

T = TypeVar("T")


async def run_optimistic(
    issue_id: str,
    max_attempts: int,
    operation: Callable[[], Awaitable[T]]
) -> T:
    """Run ``operation`` until it commits without a version conflict."""
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except StaleVersionError as e:
            logger.warning(
                "Optimistic lock conflict",
                extra={
                    "issue_id": issue_id,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "expected_version": e.expected_version,
                }
            )
    raise ConflictException(issue_id, max_attempts)


class IssueServiceBase:
    """Common dependencies and helpers of the issue application services."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        notifier: Optional[NotificationDispatcher] = None,
        max_conflict_retries: int = 3,
        clock: Clock = utc_now
    ):
        self._issues = issue_repository
        self._notifier = notifier
        self._max_attempts = max_conflict_retries
        self._clock = clock

    async def _load(self, issue_id: str) -> Issue:
        issue = await self._issues.get(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)
        return issue

    async def _mutate(
        self,
        issue_id: str,
        compute: Callable[[Issue], Awaitable[Issue]]
    ) -> Tuple[Issue, Issue]:
        """
        Optimistically apply ``compute`` to the current issue.

        ``compute`` returning the same object means "nothing to change"; no
        save happens and ``(issue, issue)`` is returned.
        """
        async def attempt() -> Tuple[Issue, Issue]:
            before = await self._load(issue_id)
            after = await compute(before)
            if after is before:
                return before, before
            saved = await self._issues.save(after, expected_version=before.version)
            return before, saved

        return await run_optimistic(issue_id, self._max_attempts, attempt)

    def _notify_principal(self, principal_id: str, title: str, body: str, issue_id: str, kind: str = "info") -> None:
        self._dispatch(NotificationTarget.principal(principal_id), title, body, issue_id, kind)

    def _notify_role(self, role: Role, title: str, body: str, issue_id: str, kind: str = "info") -> None:
        self._dispatch(NotificationTarget.for_role(role), title, body, issue_id, kind)

    def _dispatch(self, target: NotificationTarget, title: str, body: str, issue_id: str, kind: str) -> None:
        if self._notifier is None:
            return
        self._notifier.dispatch(
            target,
            NotificationMessage(title=title, body=body, issue_id=issue_id, kind=kind),
        )
