"""
DocVault Backend - Services Package
====================================

Business logic, independent of HTTP:
    metadata_policy   → lifecycle stamps and the active-only predicate
    filter_compiler   → document-style filters/sorts/projections → SQLAlchemy
    document_service  → DocumentGateway (collections and documents)
    audit_service     → AuditTrail, AuditRecorder, AuditLogService
    auth_service      → password login and token issuance
"""
