"""
Scrapbook Backend — Application Package Initializer
====================================================

Layered architecture:

    ┌─────────────────────────────────────┐
    │   Routes + security (API layer)     │  ← HTTP, principal, status codes
    ├─────────────────────────────────────┤
    │   Services (business rules)         │  ← identity, access, scores, pages
    ├─────────────────────────────────────┤
    │   Models & Schemas (data)           │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database (persistence)            │  ← async sessions, upserts
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
