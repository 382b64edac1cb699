"""
DocVault Backend - Database Handle & Session Management
========================================================

What:  The process-wide document store handle, the declarative Base, and the
       FastAPI session dependency.
Why:   One object owns the connection pool and its lifecycle, so every consumer
       receives it as a dependency instead of reaching into a global cache.
How:   `Database` creates its async engine lazily on first use, hands out
       sessions, and tears the pool down in `dispose()` at shutdown.
Who:   Created in main.create_app() and stored on `app.state.database`;
       tests build their own in-memory instance and pass it to create_app().

Connection Pooling Strategy (PostgreSQL):
    pool_size=20, max_overflow=10: at most 30 connections per worker
    pool_pre_ping:    Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour
    pool_timeout / connect timeout: bounded by DB_CONNECT_TIMEOUT

SQLite (tests, local runs) uses a StaticPool so an in-memory database is shared
by every session of the process.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from starlette.requests import Request

from docvault.config import Settings, settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, used by Alembic for migrations and by
    Database.create_all() in tests.
    """
    pass


class Database:
    """
    Lazily-initialized async engine plus session factory.

    The engine is created on first access (not at import), reused by every
    request, and released by dispose(). After dispose() the next access builds
    a fresh engine, which is how a process recovers from a torn-down pool.
    """

    def __init__(self, url: str, **engine_options: Any):
        self.url = url
        self._engine_options = engine_options
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, config: Settings) -> "Database":
        """Build a handle with pool options appropriate for the configured driver."""
        if config.database_url.startswith("sqlite"):
            options: dict = {
                "poolclass": StaticPool,
                "connect_args": {"timeout": config.db_connect_timeout},
            }
        else:
            options = {
                "pool_size": config.db_pool_size,
                "max_overflow": config.db_max_overflow,
                "pool_pre_ping": config.db_pool_pre_ping,
                "pool_recycle": 3600,
                "pool_timeout": config.db_connect_timeout,
                "connect_args": {"timeout": config.db_connect_timeout},
            }
        # SQL logging is noisy; only in DEBUG
        options["echo"] = config.log_level == "DEBUG"
        return cls(config.database_url, **options)

    def _ensure_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self.url, **self._engine_options)
            # expire_on_commit=False: objects stay readable after the request commits
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._engine

    @property
    def engine(self) -> AsyncEngine:
        return self._ensure_engine()

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._ensure_engine()
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Standalone session for work outside a request (audit writes, scripts)."""
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create every table known to Base.metadata (tests and local development)."""
        from docvault import models  # noqa: F401  registers all tables

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        """Round-trip a trivial query; raises if the store is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """
        What:  Gracefully closes all connections in the pool.
        When:  Called during application shutdown (lifespan handler).
        """
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None


# Default process-wide handle; create_app() uses it unless given another one
database = Database.from_settings(settings)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the app's Database handle
        2. Yields it to the route handler
        3. On error: rolls back and re-raises for the global error handlers
        4. Always: closes the session (returns connection to pool)

    Services commit their own writes. The teardown of a yield dependency may
    run after the response has been sent, too late to report a failed commit.
    """
    db: Database = request.app.state.database
    async with db.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
