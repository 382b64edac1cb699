"""
DocVault Backend - Collection & Document Models
================================================

What:  ORM models for the `collections` registry and the `documents` table.
Why:   Gives a relational store the shape of a document database: named
       collections holding schema-less JSON documents.
How:   Caller fields live in the `data` JSON column. Lifecycle metadata lives in
       real columns so the active-only predicate is `deleted_at IS NULL`.

Table Design Rationale:
    - UUID primary key: exposed to clients as the opaque `_id` string
    - collection: plain string, not a foreign key; inserting into an unknown
      collection registers it (document-database behaviour)
    - deleted_at: NULL means active. Rows are never physically removed by the API.

    Index on (collection, deleted_at):
        Every read is "documents of collection X that are not deleted".
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from docvault.database import Base

# Columns that hold lifecycle metadata; never stored inside `data`
LIFECYCLE_FIELDS = (
    "created_at",
    "created_by",
    "updated_at",
    "updated_by",
    "deleted_at",
    "deleted_by",
)


class DocumentCollection(Base):
    """A named collection. Creating one twice is a no-op."""

    __tablename__ = "collections"

    name: Mapped[str] = mapped_column(
        String(120),
        primary_key=True,
        comment="Collection name as used in /api/collections/{name}",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the collection was registered (UTC)",
    )
    created_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Username that registered the collection, or 'system'",
    )

    def __repr__(self) -> str:
        return f"<DocumentCollection(name='{self.name}')>"


class Document(Base):
    """
    One JSON document in a collection.

    Lifecycle:
        1. Inserted: created_at / created_by set once
        2. Updated any number of times: updated_at / updated_by overwritten
        3. Soft-deleted at most once: deleted_at / deleted_by set, row kept
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Document identifier, serialized as _id",
    )
    collection: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        comment="Owning collection name",
    )
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
        comment="Caller-supplied fields (reserved names stripped)",
    )

    # ── Lifecycle metadata ────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Soft-delete marker; NULL means the document is active",
    )
    deleted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_documents_collection_deleted_at", "collection", "deleted_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize as the client sees it: `_id`, caller fields, then whichever
        lifecycle fields are set. Unset metadata is omitted, not null.
        """
        doc: Dict[str, Any] = {"_id": str(self.id)}
        doc.update(self.data or {})
        for field in LIFECYCLE_FIELDS:
            value = getattr(self, field)
            if value is not None:
                doc[field] = value
        return doc

    def __repr__(self) -> str:
        return (
            f"<Document(id={self.id}, collection='{self.collection}', "
            f"deleted_at={self.deleted_at})>"
        )
