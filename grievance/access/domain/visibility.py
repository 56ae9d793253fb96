"""
Comment Visibility
==================

Decides who may read and write the two comment channels of an issue.

- External: reporter, assignee and ``manage:issues`` holders read; only the
  assignee or a ``manage:issues`` holder writes. The reporter posts through
  the reply path, open until the issue is closed.
- Internal: assignee or ``manage:issues`` holder only, never the reporter.
- No channel accepts writes while the issue is resolved or closed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from grievance.access.domain.entities import Principal
from grievance.access.domain.permissions import PermissionModel
from grievance.config import IssueStatus, Permission, TERMINAL_STATUSES


class IssueAccessView(Protocol):
    """The slice of an issue the guard looks at."""
    id: str
    reporter_id: str
    assigned_to: Optional[str]
    status: IssueStatus


class CommentChannel(str, Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ChannelAccess:
    """Guard verdict for one channel. ``restricted`` is distinct from an empty channel."""
    channel: CommentChannel
    can_view: bool
    can_write: bool

    @property
    def restricted(self) -> bool:
        return not self.can_view


class CommentVisibilityGuard:
    """Comment read/write decisions for a principal on an issue."""

    def __init__(self, permission_model: PermissionModel):
        self._permissions = permission_model

    def _manages(self, principal: Principal) -> bool:
        return self._permissions.has_permission(principal, Permission.MANAGE_ISSUES)

    @staticmethod
    def _is_assignee(principal: Principal, issue: IssueAccessView) -> bool:
        return issue.assigned_to is not None and issue.assigned_to == principal.id

    @staticmethod
    def _is_reporter(principal: Principal, issue: IssueAccessView) -> bool:
        return issue.reporter_id == principal.id

    def can_view(self, principal: Principal, issue: IssueAccessView, internal: bool = False) -> bool:
        if internal:
            if self._is_reporter(principal, issue):
                return False
            return self._is_assignee(principal, issue) or self._manages(principal)
        return (
            self._is_reporter(principal, issue)
            or self._is_assignee(principal, issue)
            or self._manages(principal)
        )

    def can_write(self, principal: Principal, issue: IssueAccessView, internal: bool) -> bool:
        if issue.status in TERMINAL_STATUSES:
            return False
        if internal:
            return self.can_view(principal, issue, internal=True)
        return self._is_assignee(principal, issue) or self._manages(principal)

    def can_reporter_reply(self, principal: Principal, issue: IssueAccessView) -> bool:
        """The reporter's own comment path, open unless the issue is closed."""
        if not self._is_reporter(principal, issue):
            return False
        return issue.status not in TERMINAL_STATUSES

    def can_post_external(self, principal: Principal, issue: IssueAccessView) -> bool:
        return self.can_write(principal, issue, internal=False) or self.can_reporter_reply(principal, issue)

    def channel_access(self, principal: Principal, issue: IssueAccessView, channel: CommentChannel) -> ChannelAccess:
        internal = channel == CommentChannel.INTERNAL
        if internal:
            can_write = self.can_write(principal, issue, internal=True)
        else:
            can_write = self.can_post_external(principal, issue)
        return ChannelAccess(
            channel=channel,
            can_view=self.can_view(principal, issue, internal=internal),
            can_write=can_write,
        )
