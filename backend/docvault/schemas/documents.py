"""
DocVault Backend - Collection & Document Schemas
=================================================

What:  Request and response bodies of the /api/collections routes.

Design Decision:
    `filter`, `projection` and `sort` are typed `Any` on purpose. Their shape is
    checked by the filter compiler, which answers 400 with a precise message
    ("filter must be an object", "Unsupported operator '$foo'") instead of
    FastAPI's generic 422.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class FindRequest(BaseModel):
    """Body of POST /api/collections/{name}/find and POST /actions/find."""

    filter: Any = Field(
        default_factory=dict,
        description="Document-style filter, e.g. {\"age\": {\"$gte\": 21}}",
    )
    projection: Any = Field(
        default=None,
        description="Fields to include ({\"a\": 1}) or exclude ({\"a\": 0})",
    )
    sort: Any = Field(default=None, description="{field: 1 | -1}")
    limit: Optional[int] = Field(
        default=None,
        description="Maximum documents returned; 0 or absent means the server default",
    )
    skip: int = Field(default=0, description="Documents to skip")


class DeleteByFilterRequest(BaseModel):
    """Body of DELETE /api/collections/{name}/documents (and its POST alternative)."""

    filter: Any = Field(default_factory=dict, description="Documents to soft-delete")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class CollectionListResponse(BaseModel):
    ok: bool = True
    collections: List[str]


class CollectionCreateResponse(BaseModel):
    ok: bool = True
    collection: str
    created: bool = Field(description="False when the collection already existed")
    message: Optional[str] = None


class InsertResponse(BaseModel):
    ok: bool = True
    insertedId: str = Field(description="Generated `_id` of the new document")


class DocumentResponse(BaseModel):
    ok: bool = True
    document: Dict[str, Any]


class DocumentListResponse(BaseModel):
    ok: bool = True
    count: int
    documents: List[Dict[str, Any]]


class DeleteResponse(BaseModel):
    ok: bool = True
    deleted: int = Field(description="Number of documents soft-deleted")
