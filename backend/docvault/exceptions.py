"""
DocVault Backend - Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for each error class the API reports.
Why:   Services raise typed errors; global handlers in main.py turn them into
       JSON responses with the right status code, so no route needs try/except.
How:   Each exception carries a client-safe message and an optional context dict
       (logged, only returned for validation errors).

Exception Hierarchy:
    DocVaultError (base)
    ├── ValidationError       → 400 Bad Request (malformed filter, body, id, name)
    ├── AuthenticationError   → 401 Unauthorized (missing/invalid/expired token)
    ├── NotFoundError         → 404 Not Found (missing OR soft-deleted document)
    └── DatabaseError         → 500 Internal Server Error (store failure)

Not-found never says whether a document was deleted or never existed; the
message is the same for both.
"""

from typing import Any, Dict, Optional


class DocVaultError(Exception):
    """
    Base exception for all DocVault application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DocVaultError):
    """
    Raised when client input fails validation.

    When:    Body is not an object, filter uses an unknown operator, identifier is
             not a UUID, collection name is empty or illegal.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(DocVaultError):
    """
    Raised when a protected route is called without a usable bearer token.

    HTTP:    401 Unauthorized, with `WWW-Authenticate: Bearer`
    The request never reaches the gateway.
    """

    def __init__(
        self,
        message: str = "Unauthorized: invalid token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(DocVaultError):
    """
    Raised when a requested resource does not exist or is soft-deleted.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class DatabaseError(DocVaultError):
    """
    Raised when store operations fail unexpectedly.

    When:    Connection lost, timeout, constraint violation.
    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; the context
    (operation, collection, driver error type) is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
