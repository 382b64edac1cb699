"""
DocVault Backend - Token & Login Tests
=======================================

What we test:
    ✅ Issued tokens verify back to the same identity
    ✅ Expired, tampered and foreign-secret tokens are rejected
    ✅ Login: missing fields (400), bad credentials (401), success (token works)
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from docvault.exceptions import AuthenticationError, ValidationError
from docvault.security import TokenService
from docvault.services.auth_service import AuthService, hash_password, verify_password

SECRET = "unit-test-secret"


class TestTokenService:
    def setup_method(self):
        self.tokens = TokenService(SECRET, expires_seconds=60)

    def test_round_trip(self):
        identity = self.tokens.verify(self.tokens.issue("alice", "alice@example.com"))
        assert identity.username == "alice"
        assert identity.email == "alice@example.com"

    def test_expired_token(self):
        payload = {"username": "alice", "exp": datetime.now(timezone.utc) - timedelta(seconds=5)}
        token = jwt.encode(payload, SECRET, algorithm="HS256")
        with pytest.raises(AuthenticationError) as exc_info:
            self.tokens.verify(token)
        assert "expired" in exc_info.value.message

    def test_wrong_secret(self):
        token = TokenService("another-secret").issue("alice")
        with pytest.raises(AuthenticationError):
            self.tokens.verify(token)

    def test_garbage(self):
        with pytest.raises(AuthenticationError):
            self.tokens.verify("not.a.token")

    def test_algorithm_none_rejected(self):
        token = jwt.encode({"username": "alice"}, None, algorithm="none")
        with pytest.raises(AuthenticationError):
            self.tokens.verify(token)

    def test_claims_without_username(self):
        token = jwt.encode({"sub": "x"}, SECRET, algorithm="HS256")
        identity = self.tokens.verify(token)
        assert identity.username is None


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash(self):
        assert not verify_password("s3cret", "not-a-bcrypt-hash")


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, session):
        tokens = TokenService(SECRET)
        service = AuthService(session, tokens)
        await service.create_user("alice", "s3cret", email="alice@example.com")

        token, user = await service.login("alice", "s3cret")

        assert user.username == "alice"
        assert tokens.verify(token).email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_login_missing_fields(self, session):
        with pytest.raises(ValidationError):
            await AuthService(session, TokenService(SECRET)).login("alice", "")

    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_look_the_same(self, session):
        service = AuthService(session, TokenService(SECRET))
        await service.create_user("alice", "s3cret")

        with pytest.raises(AuthenticationError) as unknown:
            await service.login("nobody", "s3cret")
        with pytest.raises(AuthenticationError) as wrong:
            await service.login("alice", "nope")

        assert unknown.value.message == wrong.value.message == "Invalid credentials"
