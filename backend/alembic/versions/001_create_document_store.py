"""Create document store, audit and user tables

Revision ID: 001
Revises: None
Create Date: 2026-10-16 00:00:00.000000+00:00

What:  Creates `collections`, `documents`, `actions` and `users`.
How:   PostgreSQL types: UUID keys, TIMESTAMP WITH TIME ZONE, JSONB documents.

Rollback: downgrade() drops all four tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── collections ───────────────────────────────────────────────────────
    op.create_table(
        "collections",
        sa.Column("name", sa.String(120), nullable=False,
                  comment="Collection name as used in /api/collections/{name}"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )

    # ── documents ─────────────────────────────────────────────────────────
    op.create_table(
        "documents",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
            comment="Document identifier, serialized as _id",
        ),
        sa.Column("collection", sa.String(120), nullable=False),
        sa.Column(
            "data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            server_default=sa.text("'{}'"),
            comment="Caller-supplied fields (reserved names stripped)",
        ),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column(
            "deleted_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Soft-delete marker; NULL means the document is active",
        ),
        sa.Column("deleted_by", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    # Every read is "active documents of collection X"
    op.create_index(
        "idx_documents_collection_deleted_at",
        "documents",
        ["collection", "deleted_at"],
    )

    # ── actions (audit trail) ─────────────────────────────────────────────
    op.create_table(
        "actions",
        sa.Column("id", postgresql.UUID(as_uuid=True),
                  server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("path", sa.Text(), nullable=False,
                  comment="Original URL path including the query string"),
        sa.Column("params", sa.JSON(), nullable=True),
        sa.Column("query", sa.JSON(), nullable=True),
        sa.Column("body", sa.JSON(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Float(), nullable=False,
                  comment="Milliseconds from request start to final response byte"),
        sa.Column("response_bytes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("ip", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_actions_timestamp", "actions", ["timestamp"])
    op.create_index("idx_actions_username", "actions", ["username"])

    # ── users ─────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True),
                  server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default=sa.text("'user'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True),
                  server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )


def downgrade() -> None:
    """WARNING: destructive. All documents and the audit trail are lost."""
    op.drop_table("users")
    op.drop_index("idx_actions_username", table_name="actions")
    op.drop_index("idx_actions_timestamp", table_name="actions")
    op.drop_table("actions")
    op.drop_index("idx_documents_collection_deleted_at", table_name="documents")
    op.drop_table("documents")
    op.drop_table("collections")
