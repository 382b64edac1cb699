"""
DocVault Backend - Middleware Package
======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → [Audit] → Route Handler

    1. Request ID first: every later layer (logs, audit rows) can read it
    2. Logging: access line with status and latency
    3. Audit innermost: observes exactly the status and bytes the routes
       and exception handlers produce, and sees request.state.identity set
       by require_identity

    Responses travel back in reverse order.
"""

from docvault.middleware.audit import AuditMiddleware
from docvault.middleware.logging import RequestLoggingMiddleware
from docvault.middleware.request_id import RequestIDMiddleware, request_id_var

__all__ = [
    "AuditMiddleware",
    "RequestIDMiddleware",
    "RequestLoggingMiddleware",
    "request_id_var",
]
