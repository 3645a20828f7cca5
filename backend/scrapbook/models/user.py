"""
Scrapbook Backend — User SQLAlchemy Model
==========================================

What:  ORM model representing the `users` table.
Who:   Used by the identity, access, page and admin services.

Table Design:
    - id: integer row id, never exposed in share links
    - share_code: uuid4 string used as the public page handle
    - external_id: the identity provider's subject id, attached on first
      login or when an access request carrying it is approved
    - email: stored lowercased; exactly one row per email
    - alias / bio / custom_picture_path: owner-edited profile fields
    - created_at / last_login_at: UTC timestamps

Lifecycle:
    1. Created on first successful identity match, allowlisted self-provision
       or access-request approval
    2. Refreshed on every login (email, display name, avatar, last_login_at)
    3. Deleted only by an administrator, together with its entries and score
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from scrapbook.database import Base

DEFAULT_AVATAR_URL = "/default-avatar.svg"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A member of the community and owner of one scrapbook page."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    external_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Subject id from the external identity provider",
    )

    email: Mapped[str] = mapped_column(
        String(320),
        unique=True,
        nullable=False,
        comment="Lowercased, trimmed email address",
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    alias: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    picture_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Avatar URL reported by the identity provider",
    )
    custom_picture_path: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Locally stored avatar, relative to the uploads root",
    )

    share_code: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        comment="Opaque public page handle (uuid4)",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_login_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_users_created_at", "created_at"),
    )

    @property
    def effective_name(self) -> str:
        """Alias when set, otherwise the provider display name."""
        alias = (self.alias or "").strip()
        return alias or self.display_name

    @property
    def avatar_url(self) -> str:
        if self.custom_picture_path:
            return f"/{self.custom_picture_path}"
        if self.picture_url:
            return self.picture_url
        return DEFAULT_AVATAR_URL

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
