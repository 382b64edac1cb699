"""
DocVault Backend - Identity Context
====================================

What:  The authenticated caller of one request.
Who:   Produced by security.require_identity; consumed by the metadata policy
       (attribution of document changes) and the audit recorder (attribution of
       requests).

An absent identity is valid everywhere. It is attributed as "system" in
document metadata and "anonymous" in audit records.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

SYSTEM_ACTOR = "system"
ANONYMOUS_ACTOR = "anonymous"


@dataclass(frozen=True)
class Identity:
    username: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Identity":
        """Build an identity from decoded token claims; extra claims are ignored."""
        username = claims.get("username")
        email = claims.get("email")
        return cls(
            username=str(username) if username else None,
            email=str(email) if email else None,
        )


def metadata_actor(identity: Optional[Identity]) -> str:
    """Name written to created_by / updated_by / deleted_by."""
    if identity is not None and identity.username:
        return identity.username
    return SYSTEM_ACTOR


def audit_actor(identity: Optional[Identity]) -> str:
    """Name written to an audit record's username."""
    if identity is not None and identity.username:
        return identity.username
    return ANONYMOUS_ACTOR
