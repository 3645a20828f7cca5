"""
Scrapbook Backend — Pydantic Request/Response Schemas
======================================================

API contracts, kept separate from the ORM models so the database layout
can change without changing what clients see (and so internal fields such
as external ids never leak by accident).
"""
