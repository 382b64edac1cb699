"""ORM models. Importing this package registers every table with Base.metadata."""

from docvault.models.audit import AuditRecord
from docvault.models.document import LIFECYCLE_FIELDS, Document, DocumentCollection
from docvault.models.user import User

__all__ = [
    "AuditRecord",
    "Document",
    "DocumentCollection",
    "LIFECYCLE_FIELDS",
    "User",
]
