"""
JWT Principal Resolver
======================

Verifies HMAC-signed bearer tokens with PyJWT.

Required claims: ``sub``, ``role``, ``exp``. Optional: ``email``,
``restricted``; ``iss``/``aud`` are enforced only when configured.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from grievance.access.application.services import IPrincipalResolver
from grievance.access.domain import Principal
from grievance.config import Role, settings
from grievance.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class JWTPrincipalResolver(IPrincipalResolver):
    """Resolves principals from JWTs; any verification failure yields None."""

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None
    ):
        self._secret = secret or settings.jwt_secret
        self._algorithm = algorithm or settings.jwt_algorithm
        self._issuer = issuer if issuer is not None else settings.jwt_issuer
        self._audience = audience if audience is not None else settings.jwt_audience

    def verify_token(self, token: str) -> Optional[Principal]:
        if not token:
            return None

        required = ["sub", "role", "exp"]
        if self._issuer:
            required.append("iss")
        if self._audience:
            required.append("aud")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                options={"require": required},
            )
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired token")
            return None
        except jwt.InvalidTokenError as e:
            logger.info("Rejected invalid token", extra={"reason": str(e)})
            return None

        try:
            role = Role(payload["role"])
        except ValueError:
            logger.info("Rejected token with unknown role", extra={"role": payload.get("role")})
            return None

        subject = str(payload["sub"]).strip()
        if not subject:
            return None

        return Principal(
            id=subject,
            role=role,
            email=payload.get("email"),
            restricted=bool(payload.get("restricted", False)),
        )


def issue_token(
    principal_id: str,
    role: Role,
    email: Optional[str] = None,
    restricted: bool = False,
    expires_in: timedelta = timedelta(hours=1),
    secret: Optional[str] = None
) -> str:
    """Sign a token the resolver accepts. For tests and local tooling only."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": principal_id,
        "role": role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    if email:
        claims["email"] = email
    if restricted:
        claims["restricted"] = True
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience

    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)
