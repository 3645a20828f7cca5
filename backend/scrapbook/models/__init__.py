"""
Scrapbook Backend — ORM Models
===============================

Importing this package registers every table on `Base.metadata`, which is
what Alembic's autogenerate and `create_all_tables()` rely on.

Tables:
    users            → User
    entries          → Entry
    score_records    → ScoreRecord
    allowed_emails   → AllowedEmail
    access_requests  → AccessRequest
"""

from scrapbook.models.access import AccessRequest, AccessRequestStatus, AllowedEmail
from scrapbook.models.entry import Entry, EntryKind
from scrapbook.models.score import ScoreRecord
from scrapbook.models.user import User

__all__ = [
    "AccessRequest",
    "AccessRequestStatus",
    "AllowedEmail",
    "Entry",
    "EntryKind",
    "ScoreRecord",
    "User",
]
