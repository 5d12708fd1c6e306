"""
Fragfolio Backend — Middleware Package
========================================

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting rejects abusive clients before any work; the request ID is
    set before the access logger reads it.
"""
