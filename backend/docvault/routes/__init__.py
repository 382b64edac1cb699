"""
DocVault Backend - API Routes Package
======================================

Route Inventory:
    - documents.py: /api/collections/...   (bearer, audited)
    - actions.py:   POST /actions/find      (bearer, audited)
    - auth.py:      POST /auth/login        (public)
    - health.py:    GET  /health            (public)

Routes stay thin: parse the request, call a service, shape the response.
"""
