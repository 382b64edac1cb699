"""
DocVault Backend - Application Package Initializer
===================================================

What: Marks the `docvault` directory as a Python package.
Why:  Enables module imports like `from docvault.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    DocVault is a thin authenticated API over a document store. Two policies
    cut across every route:

    ┌─────────────────────────────────────┐
    │     Middleware (Request ID, Audit)  │  ← one audit record per request
    ├─────────────────────────────────────┤
    │           Routes (API Layer)        │  ← HTTP concerns + identity
    ├─────────────────────────────────────┤
    │   Services (Gateway, Policy, Auth)  │  ← soft delete + lifecycle metadata
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes never touch documents directly: every read and write goes through
    DocumentGateway, which applies the metadata policy and the active-only
    predicate, so a soft-deleted document cannot leak through any endpoint.
"""

__version__ = "1.0.0"
