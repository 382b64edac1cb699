"""
DocVault Backend - Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets a fresh in-memory SQLite store (aiosqlite + StaticPool)
       with all tables created, and an app built around it with create_app().

Fixture Hierarchy:
    database            → fresh Database handle, tables created, disposed after
    ├── session         → AsyncSession for gateway/service tests
    ├── app             → FastAPI app bound to `database`
    │   └── test_client → HTTPX AsyncClient; drains audit writes after every response
    └── audit_records   → helper returning all stored AuditRecord rows

    auth_headers        → builds an Authorization header for a username
"""

import os

# Must be set before any docvault import instantiates Settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["AUDIT_UNAUTHENTICATED_REQUESTS"] = "false"

from typing import Callable, Dict, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from docvault.config import settings  # noqa: E402
from docvault.database import Database  # noqa: E402
from docvault.main import create_app  # noqa: E402
from docvault.models import AuditRecord  # noqa: E402
from docvault.security import token_service  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Store
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    db = Database.from_settings(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session() as s:
        yield s


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(database):
    return create_app(database)


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX client talking to the app in-process.

    Audit records are written after the response; the response hook waits for
    them so assertions right after a request see the row.
    """
    recorder = app.state.audit_recorder

    async def drain_audit(response):
        await recorder.drain()

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        event_hooks={"response": [drain_audit]},
    ) as client:
        yield client


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def make(username: str = "alice", email: Optional[str] = None) -> Dict[str, str]:
        token = token_service.issue(username, email or f"{username}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest.fixture
def audit_records(database):
    async def fetch():
        async with database.session() as s:
            result = await s.execute(select(AuditRecord).order_by(AuditRecord.timestamp))
            return list(result.scalars().all())

    return fetch
