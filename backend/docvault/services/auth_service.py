"""
DocVault Backend - Login Service
=================================

What:  Exchanges a username/password for a bearer token.
Who:   POST /auth/login.

Unknown users and wrong passwords produce the same AuthenticationError so the
response does not reveal which usernames exist.
"""

import asyncio
import logging
from typing import Optional, Tuple

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.exceptions import AuthenticationError, DatabaseError, ValidationError
from docvault.models.user import User
from docvault.security import TokenService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long password
        return False


class AuthService:
    def __init__(self, session: AsyncSession, tokens: TokenService):
        self.session = session
        self.tokens = tokens

    async def login(self, username: Optional[str], password: Optional[str]) -> Tuple[str, User]:
        """
        Returns:
            (token, user) for valid credentials

        Raises:
            ValidationError:     username or password missing
            AuthenticationError: unknown user or wrong password
        """
        if not username or not password:
            raise ValidationError("username and password required")

        try:
            result = await self.session.execute(select(User).where(User.username == username))
            user = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error during login: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "login"}) from e

        if user is None:
            logger.info("Login failed for unknown user '%s'", username)
            raise AuthenticationError(INVALID_CREDENTIALS)

        # bcrypt is CPU-bound; keep it off the event loop
        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.info("Login failed for user '%s': wrong password", username)
            raise AuthenticationError(INVALID_CREDENTIALS)

        token = self.tokens.issue(user.username, user.email, {"role": user.role})
        logger.info("User '%s' logged in", username)
        return token, user

    async def create_user(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        role: str = "user",
    ) -> User:
        """Register an account (used by tests and provisioning)."""
        if not username or not password:
            raise ValidationError("username and password required")
        password_hash = await asyncio.to_thread(hash_password, password)
        user = User(username=username, email=email, password_hash=password_hash, role=role)
        self.session.add(user)
        await self.session.flush()
        return user
