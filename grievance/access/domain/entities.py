"""
Access Domain Entities
======================

The principal is passed explicitly into every core call; nothing reads
"current user" state from ambient storage.
"""

from dataclasses import dataclass
from typing import Optional

from grievance.config import Role


@dataclass(frozen=True)
class Principal:
    """
    An authenticated caller plus its resolved role.

    ``restricted`` is the per-principal hard-deny flag carried by the token;
    the configured email list is checked separately by the permission model.
    """

    id: str
    role: Role
    email: Optional[str] = None
    restricted: bool = False

    def __post_init__(self):
        if not self.id:
            raise ValueError("principal id cannot be empty")
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if self.email is not None:
            object.__setattr__(self, "email", self.email.strip().lower())


# Actor used by background jobs (SLA monitor auto-escalation).
SYSTEM_PRINCIPAL = Principal(id="system", role=Role.ADMIN)
