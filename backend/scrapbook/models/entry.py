"""
Scrapbook Backend — Entry SQLAlchemy Model
===========================================

What:  ORM model for the `entries` table: posts written onto a user's page.
Who:   Written by the page service, the welcome-entry seeding and removed by
       the admin service.

Content invariant (enforced by a CHECK constraint as well as the service):
    kind == 'text'            → text_content set, file_path NULL
    kind in ('image','audio') → file_path set, text_content NULL

system_key:
    NULL for member posts. System-generated posts carry a key (e.g.
    'welcome') and the unique (target_user_id, system_key) constraint keeps
    them to one per page. NULLs never collide, so member posts are unaffected.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from scrapbook.database import Base
from scrapbook.models.user import utcnow


class EntryKind(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"


class Entry(Base):
    """A single text, image or audio post on a target user's page."""

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    target_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    author_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    kind: Mapped[str] = mapped_column(String(10), nullable=False)

    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    original_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    system_key: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("kind IN ('text', 'image', 'audio')", name="ck_entries_kind"),
        CheckConstraint(
            "(kind = 'text' AND text_content IS NOT NULL AND file_path IS NULL) OR "
            "(kind IN ('image', 'audio') AND file_path IS NOT NULL AND text_content IS NULL)",
            name="ck_entries_content_matches_kind",
        ),
        UniqueConstraint("target_user_id", "system_key", name="uq_entries_target_system_key"),
        Index("idx_entries_target_user", "target_user_id"),
        Index("idx_entries_author_user", "author_user_id"),
        Index("idx_entries_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Entry(id={self.id}, kind='{self.kind}', "
            f"target={self.target_user_id}, author={self.author_user_id})>"
        )
