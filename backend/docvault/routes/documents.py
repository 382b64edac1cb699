"""
DocVault Backend - Collection & Document Route Handlers
========================================================

What:  The /api/collections surface: collections, document CRUD, find and
       soft-delete.
How:   Every route requires a bearer token (router-level dependency), pulls a
       DocumentGateway bound to the request session, and delegates. Errors are
       raised by the gateway and mapped to responses by the handlers in
       main.py.

Route Inventory:
    GET    /api/collections                              list collections
    POST   /api/collections/{name}                       create (201) / exists (200)
    POST   /api/collections/{name}/documents             insert (201)
    POST   /api/collections/{name}/find                  find active documents
    GET    /api/collections/{name}/documents/{id}        get one
    PATCH  /api/collections/{name}/documents/{id}        shallow update
    DELETE /api/collections/{name}/documents/{id}        soft-delete one
    DELETE /api/collections/{name}/documents             soft-delete by filter
    POST   /api/collections/{name}/documents/delete      same, for clients that
                                                         cannot send a DELETE body
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Response

from docvault.identity import Identity
from docvault.schemas.common import ErrorResponse
from docvault.schemas.documents import (
    CollectionCreateResponse,
    CollectionListResponse,
    DeleteByFilterRequest,
    DeleteResponse,
    DocumentListResponse,
    DocumentResponse,
    FindRequest,
    InsertResponse,
)
from docvault.security import require_identity
from docvault.services.document_service import DocumentGateway, get_document_gateway

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Documents"],
    dependencies=[Depends(require_identity)],
    responses={
        400: {"description": "Malformed input", "model": ErrorResponse},
        401: {"description": "Missing or invalid bearer token", "model": ErrorResponse},
        500: {"description": "Store failure", "model": ErrorResponse},
    },
)


@router.get(
    "/collections",
    response_model=CollectionListResponse,
    summary="List collections",
)
async def list_collections(
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> CollectionListResponse:
    return CollectionListResponse(collections=await gateway.list_collections())


@router.post(
    "/collections/{name}",
    status_code=201,
    response_model=CollectionCreateResponse,
    responses={200: {"description": "Collection already exists", "model": CollectionCreateResponse}},
    summary="Create a collection",
)
async def create_collection(
    name: str,
    response: Response,
    identity: Identity = Depends(require_identity),
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> CollectionCreateResponse:
    created = await gateway.create_collection(name, identity)
    if not created:
        response.status_code = 200
        return CollectionCreateResponse(
            collection=name, created=False, message="Collection already exists"
        )
    return CollectionCreateResponse(collection=name, created=True)


@router.post(
    "/collections/{name}/documents",
    status_code=201,
    response_model=InsertResponse,
    summary="Insert a document",
    description=(
        "Stores the JSON object body as a new document. Reserved fields (_id and "
        "lifecycle metadata) in the body are ignored. Unknown collections are created."
    ),
)
async def insert_document(
    name: str,
    body: Any = Body(default=None),
    identity: Identity = Depends(require_identity),
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> InsertResponse:
    inserted_id = await gateway.insert_document(name, body, identity)
    return InsertResponse(insertedId=inserted_id)


@router.post(
    "/collections/{name}/find",
    response_model=DocumentListResponse,
    summary="Find active documents",
)
async def find_documents(
    name: str,
    payload: Optional[FindRequest] = None,
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> DocumentListResponse:
    payload = payload or FindRequest()
    documents = await gateway.find_documents(
        name,
        filter=payload.filter,
        projection=payload.projection,
        sort=payload.sort,
        limit=payload.limit,
        skip=payload.skip,
    )
    return DocumentListResponse(count=len(documents), documents=documents)


@router.get(
    "/collections/{name}/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"description": "Missing or deleted", "model": ErrorResponse}},
    summary="Get a document",
)
async def get_document(
    name: str,
    document_id: str,
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> DocumentResponse:
    return DocumentResponse(document=await gateway.get_document(name, document_id))


@router.patch(
    "/collections/{name}/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"description": "Missing or deleted", "model": ErrorResponse}},
    summary="Update a document",
    description="Top-level fields in the body replace stored values; other fields are kept.",
)
async def update_document(
    name: str,
    document_id: str,
    body: Any = Body(default=None),
    identity: Identity = Depends(require_identity),
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> DocumentResponse:
    document = await gateway.update_document(name, document_id, body, identity)
    return DocumentResponse(document=document)


@router.delete(
    "/collections/{name}/documents/{document_id}",
    response_model=DeleteResponse,
    responses={404: {"description": "Missing or already deleted", "model": ErrorResponse}},
    summary="Soft-delete a document",
)
async def delete_document(
    name: str,
    document_id: str,
    identity: Identity = Depends(require_identity),
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> DeleteResponse:
    await gateway.soft_delete_document(name, document_id, identity)
    return DeleteResponse(deleted=1)


async def _delete_by_filter(
    name: str,
    payload: Optional[DeleteByFilterRequest],
    identity: Identity,
    gateway: DocumentGateway,
) -> DeleteResponse:
    payload = payload or DeleteByFilterRequest()
    deleted = await gateway.soft_delete_documents(name, payload.filter, identity)
    return DeleteResponse(deleted=deleted)


@router.delete(
    "/collections/{name}/documents",
    response_model=DeleteResponse,
    summary="Soft-delete documents matching a filter",
)
async def delete_documents(
    name: str,
    payload: Optional[DeleteByFilterRequest] = None,
    identity: Identity = Depends(require_identity),
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> DeleteResponse:
    return await _delete_by_filter(name, payload, identity, gateway)


@router.post(
    "/collections/{name}/documents/delete",
    response_model=DeleteResponse,
    summary="Soft-delete documents matching a filter (POST)",
)
async def delete_documents_post(
    name: str,
    payload: Optional[DeleteByFilterRequest] = None,
    identity: Identity = Depends(require_identity),
    gateway: DocumentGateway = Depends(get_document_gateway),
) -> DeleteResponse:
    return await _delete_by_filter(name, payload, identity, gateway)
