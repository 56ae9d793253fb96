"""
Access Application Services
===========================

Principal resolution contract. Authentication itself is external; only its
result, a ``Principal``, is consumed.
"""

from abc import ABC, abstractmethod
from typing import Optional

from grievance.access.domain import Principal


class IPrincipalResolver(ABC):
    """Interface for turning a bearer token into a principal."""

    @abstractmethod
    def verify_token(self, token: str) -> Optional[Principal]:
        """Return the principal, or None when the token is not acceptable."""
        pass
