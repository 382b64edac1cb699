"""
DocVault Backend - Identity Resolution
=======================================

What:  Bearer-token verification and the `require_identity` dependency.
Why:   Every /api and /actions route needs the caller's identity, both to
       attribute document changes and to attribute audit records.
How:   HS256 JWTs verified with PyJWT against JWT_SECRET. The decoded
       {username, email} becomes an Identity, attached to request.state (read
       by AuditMiddleware) and returned to the route (passed to the gateway).

Rejections (all 401, nothing downstream runs):
    - no Authorization header, or a scheme other than Bearer
    - signature or format invalid
    - token expired
    - payload is not a JSON object
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from docvault.config import Settings, settings
from docvault.exceptions import AuthenticationError
from docvault.identity import Identity

logger = logging.getLogger(__name__)

# auto_error=False: a missing header reaches require_identity as None so the
# 401 body has the same shape as every other error
bearer_scheme = HTTPBearer(auto_error=False)


class TokenService:
    """Issues and verifies signed bearer tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expires_seconds: int = 86_400):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_seconds = expires_seconds

    @classmethod
    def from_settings(cls, config: Settings) -> "TokenService":
        return cls(
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            expires_seconds=config.jwt_expires_seconds,
        )

    def issue(
        self,
        username: str,
        email: Optional[str] = None,
        extra_claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = dict(extra_claims or {})
        payload.update(
            {
                "username": username,
                "email": email,
                "iat": now,
                "exp": now + timedelta(seconds=self.expires_seconds),
            }
        )
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """
        Decode and validate `token`.

        Raises:
            AuthenticationError: expired, tampered, malformed or non-object payload
        """
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Unauthorized: token expired") from None
        except jwt.PyJWTError as e:
            logger.debug("Token rejected: %s", str(e))
            raise AuthenticationError() from None

        if not isinstance(claims, dict):
            raise AuthenticationError()
        return Identity.from_claims(claims)


token_service = TokenService.from_settings(settings)


def get_token_service() -> TokenService:
    """Dependency hook; tests override it through app.dependency_overrides."""
    return token_service


async def require_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """
    FastAPI dependency guarding protected routers.

    FastAPI caches it per request, so declaring it on the router and again on a
    handler verifies the token once.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized: missing or invalid token")

    identity = tokens.verify(credentials.credentials)
    request.state.identity = identity
    return identity
