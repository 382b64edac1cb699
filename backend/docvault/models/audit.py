"""
DocVault Backend - Audit Record Model
======================================

What:  ORM model for the `actions` table: one row per completed audited request.
Why:   Durable, queryable trail of who did what, when, and with which outcome.
Who:   Written only by AuditRecorder; read by POST /actions/find.

Rows are write-once. Nothing in the application updates or deletes them.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from docvault.database import Base


class AuditRecord(Base):
    """One audited HTTP exchange."""

    __tablename__ = "actions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # ── Who ───────────────────────────────────────────────────────────────
    username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Authenticated username, or 'anonymous'",
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── What ──────────────────────────────────────────────────────────────
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Original URL path including the query string",
    )
    params: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    query: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    body: Mapped[Optional[Any]] = mapped_column(
        JSON,
        nullable=True,
        comment="Parsed JSON request body; NULL when absent or not JSON",
    )

    # ── Outcome ───────────────────────────────────────────────────────────
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Milliseconds from request start to final response byte",
    )
    response_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── When / where from ─────────────────────────────────────────────────
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_actions_timestamp", "timestamp"),
        Index("idx_actions_username", "username"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": str(self.id),
            "username": self.username,
            "email": self.email,
            "method": self.method,
            "path": self.path,
            "params": self.params,
            "query": self.query,
            "body": self.body,
            "status_code": self.status_code,
            "duration": self.duration,
            "response_bytes": self.response_bytes,
            "timestamp": self.timestamp,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "request_id": self.request_id,
        }

    def __repr__(self) -> str:
        return (
            f"<AuditRecord({self.method} {self.path} -> {self.status_code}, "
            f"user='{self.username}')>"
        )
