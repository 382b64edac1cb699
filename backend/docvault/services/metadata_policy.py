"""
DocVault Backend - Lifecycle Metadata Policy
=============================================

What:  Pure functions that stamp lifecycle metadata and restrict predicates to
       active (non-deleted) documents.
Who:   DocumentGateway, for every insert, update, delete and read.

Merge rule:
    Caller fields are computed first, policy fields second, and policy fields
    always win. Reserved names the caller sends are dropped before the merge,
    so a caller can never set `deleted_at` on insert or clear it on update.

Active-only rule:
    with_active_only(P) == P AND deleted_at absent. The clause is applied last;
    a caller constraint on `deleted_at` is replaced, not combined.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from docvault.identity import Identity, metadata_actor

# Fields no caller can write directly. `_id` is assigned by the store.
RESERVED_FIELDS = frozenset(
    {
        "_id",
        "created_at",
        "created_by",
        "updated_at",
        "updated_by",
        "deleted_at",
        "deleted_by",
    }
)

ACTIVE_ONLY_CLAUSE: Dict[str, Any] = {"$exists": False}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def creation_metadata(identity: Optional[Identity]) -> Dict[str, Any]:
    return {"created_at": _now(), "created_by": metadata_actor(identity)}


def update_metadata(identity: Optional[Identity]) -> Dict[str, Any]:
    return {"updated_at": _now(), "updated_by": metadata_actor(identity)}


def deletion_metadata(identity: Optional[Identity]) -> Dict[str, Any]:
    return {"deleted_at": _now(), "deleted_by": metadata_actor(identity)}


def with_active_only(predicate: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Return a new predicate that additionally requires `deleted_at` to be absent.

    The input is never mutated. `None` and `{}` both mean "match all".
    """
    combined = dict(predicate or {})
    combined["deleted_at"] = dict(ACTIVE_ONLY_CLAUSE)
    return combined


def strip_reserved(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of `fields` without any reserved name."""
    return {key: value for key, value in fields.items() if key not in RESERVED_FIELDS}


def merge_with_policy(
    caller_fields: Mapping[str, Any], policy_fields: Mapping[str, Any]
) -> Dict[str, Any]:
    """Caller fields minus reserved names, overlaid with policy fields (policy wins)."""
    merged = strip_reserved(caller_fields)
    merged.update(policy_fields)
    return merged
