"""
Codemmunity Backend: Application Package
=========================================

What: Backend service for the Codemmunity code-sharing platform.
      Members publish source-code posts and thread comments beneath them.

Architecture Note:
    The backend is split into layers, each importable and testable on its own:

    ┌─────────────────────────────────────┐
    │        Routes (API Adapter)         │  ← request shape, status mapping
    ├─────────────────────────────────────┤
    │       Repositories (Queries)        │  ← transactions, invariants
    ├─────────────────────────────────────┤
    │   Models (ORM) & Entities (values)  │  ← tables and frozen records
    ├─────────────────────────────────────┤
    │   Connection Manager (database.py)  │  ← pool, TLS, timeouts
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
