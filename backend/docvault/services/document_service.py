"""
DocVault Backend - Document Store Gateway
==========================================

What:  Every collection and document operation the API exposes.
Why:   The lifecycle-metadata policy must apply to every mutation and every
       read uniformly. Keeping all store access here means no route can
       forget it.
How:   Caller input is validated, merged with the metadata policy, compiled
       into SQLAlchemy statements and executed on the injected session.
Who:   Route handlers in routes/documents.py, via get_document_gateway().

Operation Summary:
    list_collections()                      → sorted names
    create_collection(name)                 → True if registered, False if it existed
    insert_document(name, body)             → new `_id`
    find_documents(name, filter, ...)       → active documents only
    get_document(name, id)                  → one active document or NotFoundError
    update_document(name, id, body)         → post-update document or NotFoundError
    soft_delete_document(name, id)          → None or NotFoundError
    soft_delete_documents(name, filter)     → number of documents deleted (0 is fine)

Design Decision:
    The gateway is constructed per request around the request's AsyncSession.
    It holds no other state, so tests build one directly over a test session.
    Every mutating operation commits before it returns, so a failed commit
    surfaces as DatabaseError (500) instead of a success response. Reads never
    commit; get_db_session rolls back whatever is left open.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.config import Settings, settings
from docvault.database import get_db_session
from docvault.exceptions import DatabaseError, NotFoundError, ValidationError
from docvault.identity import Identity
from docvault.models.document import LIFECYCLE_FIELDS, Document, DocumentCollection
from docvault.services.filter_compiler import FilterCompiler, Projection
from docvault.services.metadata_policy import (
    creation_metadata,
    deletion_metadata,
    merge_with_policy,
    update_metadata,
    with_active_only,
)

logger = logging.getLogger(__name__)

COLLECTION_NAME_MAX_LENGTH = 120

document_filters = FilterCompiler(
    columns={
        "_id": Document.id,
        "created_at": Document.created_at,
        "created_by": Document.created_by,
        "updated_at": Document.updated_at,
        "updated_by": Document.updated_by,
        "deleted_at": Document.deleted_at,
        "deleted_by": Document.deleted_by,
    },
    data_column=Document.data,
)


# ── Input validation ──────────────────────────────────────────────────────


def validate_collection_name(name: Any) -> str:
    """Return `name` unchanged if it is a legal collection name."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Collection name is required", field="name")
    if len(name) > COLLECTION_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Collection name must be at most {COLLECTION_NAME_MAX_LENGTH} characters",
            field="name",
        )
    if "$" in name or "\x00" in name:
        raise ValidationError("Collection name contains illegal characters", field="name")
    if name.startswith("system."):
        raise ValidationError("Collection names starting with 'system.' are reserved", field="name")
    return name


def parse_document_id(raw: Any) -> uuid.UUID:
    """Opaque `_id` string → UUID. Anything unconvertible is a client error."""
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise ValidationError(f"'{raw}' is not a valid document id", field="id") from None


def _require_object(value: Any, field: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(f"{field} must be a JSON object", field=field)
    return value


def _split_metadata(merged: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Separate caller data from lifecycle columns of a merged mapping."""
    data = {k: v for k, v in merged.items() if k not in LIFECYCLE_FIELDS}
    metadata = {k: v for k, v in merged.items() if k in LIFECYCLE_FIELDS}
    return data, metadata


@contextmanager
def store_errors(operation: str, collection: Optional[str] = None) -> Iterator[None]:
    """Translate driver failures into DatabaseError (500, generic message)."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(
            "Store error during %s on collection '%s': %s",
            operation,
            collection,
            str(e),
            exc_info=True,
        )
        raise DatabaseError(
            context={
                "operation": operation,
                "collection": collection,
                "error_type": type(e).__name__,
            }
        ) from e


class DocumentGateway:
    """
    Document operations over one AsyncSession.

    Not-found is reported identically for documents that never existed and
    documents that were soft-deleted.
    """

    def __init__(self, session: AsyncSession, config: Settings = settings):
        self.session = session
        self.config = config

    # ── Collections ───────────────────────────────────────────────────────

    async def list_collections(self) -> List[str]:
        with store_errors("list_collections"):
            result = await self.session.execute(
                select(DocumentCollection.name).order_by(DocumentCollection.name)
            )
            return list(result.scalars().all())

    async def create_collection(self, name: str, identity: Optional[Identity] = None) -> bool:
        """
        Register a collection. Idempotent.

        Returns:
            True when the collection was created, False when it already existed
        """
        name = validate_collection_name(name)
        with store_errors("create_collection", name):
            created = await self._register_collection(name, identity)
            await self.session.commit()
        if created:
            logger.info("Collection '%s' created", name)
        return created

    async def _register_collection(self, name: str, identity: Optional[Identity]) -> bool:
        # INSERT ... ON CONFLICT DO NOTHING: concurrent creators never raise
        dialect = self.session.get_bind().dialect.name
        values = {"name": name, **creation_metadata(identity)}
        if dialect == "postgresql":
            stmt = postgresql.insert(DocumentCollection.__table__).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite.insert(DocumentCollection.__table__).values(**values)
        else:
            existing = await self.session.get(DocumentCollection, name)
            if existing is not None:
                return False
            self.session.add(DocumentCollection(**values))
            await self.session.flush()
            return True

        result = await self.session.execute(
            stmt.on_conflict_do_nothing(index_elements=["name"])
        )
        return result.rowcount == 1

    # ── Writes ────────────────────────────────────────────────────────────

    async def insert_document(
        self,
        name: str,
        body: Any,
        identity: Optional[Identity] = None,
    ) -> str:
        """
        Insert one document, registering the collection on first use.

        Reserved names in `body` (`_id` and lifecycle fields) are discarded.

        Returns:
            The generated `_id`
        """
        name = validate_collection_name(name)
        body = _require_object(body, "body")
        data, metadata = _split_metadata(merge_with_policy(body, creation_metadata(identity)))

        with store_errors("insert_document", name):
            await self._register_collection(name, identity)
            document = Document(collection=name, data=data, **metadata)
            self.session.add(document)
            await self.session.flush()
            await self.session.commit()

        logger.info("Inserted document %s into '%s'", document.id, name)
        return str(document.id)

    async def update_document(
        self,
        name: str,
        document_id: Any,
        body: Any,
        identity: Optional[Identity] = None,
    ) -> Dict[str, Any]:
        """
        Shallow-merge `body` into an active document and stamp update metadata.

        Top-level fields in `body` replace the stored values; other fields are
        kept. An empty body still stamps `updated_at` / `updated_by`.

        Raises:
            NotFoundError: No active document with that id (deleted ones included)
        """
        name = validate_collection_name(name)
        doc_id = parse_document_id(document_id)
        body = _require_object(body, "body")
        updates, metadata = _split_metadata(merge_with_policy(body, update_metadata(identity)))

        with store_errors("update_document", name):
            result = await self.session.execute(
                select(Document)
                .where(
                    Document.collection == name,
                    document_filters.compile(with_active_only({"_id": doc_id})),
                )
                .with_for_update()
            )
            document = result.scalar_one_or_none()
            if document is None:
                raise NotFoundError(resource="document", resource_id=str(doc_id))

            # Reassign so the JSON column is marked dirty
            document.data = {**(document.data or {}), **updates}
            for field, value in metadata.items():
                setattr(document, field, value)
            await self.session.flush()
            await self.session.commit()

        return document.to_dict()

    async def soft_delete_document(
        self,
        name: str,
        document_id: Any,
        identity: Optional[Identity] = None,
    ) -> None:
        """
        Mark one active document deleted.

        Raises:
            NotFoundError: No active document with that id, including a second
                           delete of the same document
        """
        name = validate_collection_name(name)
        doc_id = parse_document_id(document_id)
        deleted = await self._soft_delete(name, {"_id": doc_id}, identity)
        if deleted == 0:
            raise NotFoundError(resource="document", resource_id=str(doc_id))

    async def soft_delete_documents(
        self,
        name: str,
        filter: Optional[Mapping[str, Any]] = None,
        identity: Optional[Identity] = None,
    ) -> int:
        """Mark every active document matching `filter` deleted; returns the count."""
        name = validate_collection_name(name)
        if filter is not None:
            _require_object(filter, "filter")
        return await self._soft_delete(name, filter, identity)

    async def _soft_delete(
        self,
        name: str,
        predicate: Optional[Mapping[str, Any]],
        identity: Optional[Identity],
    ) -> int:
        # A single UPDATE keeps the active check and the stamp atomic
        condition = document_filters.compile(with_active_only(predicate))
        with store_errors("soft_delete", name):
            result = await self.session.execute(
                update(Document)
                .where(Document.collection == name, condition)
                .values(**deletion_metadata(identity))
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        count = result.rowcount or 0
        logger.info("Soft-deleted %d document(s) in '%s'", count, name)
        return count

    # ── Reads ─────────────────────────────────────────────────────────────

    async def find_documents(
        self,
        name: str,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        sort: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Active documents of `name` matching `filter`.

        Without `sort`, documents come back in insertion order.
        `limit` falls back to FIND_DEFAULT_LIMIT when absent or 0 and never
        exceeds FIND_MAX_LIMIT.
        """
        name = validate_collection_name(name)
        if filter is not None:
            _require_object(filter, "filter")
        condition = document_filters.compile(with_active_only(filter))
        fields = Projection(projection)
        order = document_filters.order_by(sort) or [
            Document.created_at.asc(),
            Document.id.asc(),
        ]
        limit = clamp_limit(limit, self.config.find_default_limit, self.config.find_max_limit)
        skip = validate_skip(skip)

        with store_errors("find_documents", name):
            result = await self.session.execute(
                select(Document)
                .where(Document.collection == name, condition)
                .order_by(*order)
                .offset(skip)
                .limit(limit)
            )
            documents = result.scalars().all()

        return [fields.apply(document.to_dict()) for document in documents]

    async def get_document(self, name: str, document_id: Any) -> Dict[str, Any]:
        """One active document by `_id`, or NotFoundError."""
        doc_id = parse_document_id(document_id)
        found = await self.find_documents(name, {"_id": doc_id}, limit=1)
        if not found:
            raise NotFoundError(resource="document", resource_id=str(doc_id))
        return found[0]


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    """0 / None → default; otherwise capped at `maximum`."""
    if limit is None or limit == 0:
        return default
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 0:
        raise ValidationError("limit must be a non-negative integer", field="limit")
    return min(limit, maximum)


def validate_skip(skip: Optional[int]) -> int:
    if skip is None:
        return 0
    if not isinstance(skip, int) or isinstance(skip, bool) or skip < 0:
        raise ValidationError("skip must be a non-negative integer", field="skip")
    return skip


# ── FastAPI dependency ────────────────────────────────────────────────────
async def get_document_gateway(
    session: AsyncSession = Depends(get_db_session),
) -> DocumentGateway:
    return DocumentGateway(session)
