# Middleware package init
"""
Codemmunity Backend: Middleware Package
=========================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    The request ID is set before the access logger runs, so every access
    line carries it; the logger measures the full handler duration.
"""
