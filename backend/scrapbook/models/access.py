"""
Scrapbook Backend — Allowlist and Access Request Models
========================================================

What:  ORM models for `allowed_emails` and `access_requests`.
Who:   Used by the allowlist and access services.

AllowedEmail:
    An email permitted to self-provision an account on first sign-in
    without administrator review. Stored lowercased; unique.

AccessRequest:
    A queued provisioning request for an identity that is neither a known
    user nor allowlisted.

    Status machine:
        pending ──approve──▶ approved
           └─────reject───▶ rejected

    Decided requests never return to pending. A rejected requester can
    sign in again later, which queues a fresh, independent request.
    The partial unique index keeps at most one pending row per email.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from scrapbook.database import Base
from scrapbook.models.user import utcnow


class AccessRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AllowedEmail(Base):
    __tablename__ = "allowed_emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<AllowedEmail(id={self.id}, email='{self.email}')>"


class AccessRequest(Base):
    __tablename__ = "access_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    picture_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccessRequestStatus.PENDING.value,
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_access_requests_status",
        ),
        Index("idx_access_requests_email", "email"),
        Index("idx_access_requests_status", "status"),
        Index(
            "uq_access_requests_pending_email",
            "email",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == AccessRequestStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<AccessRequest(id={self.id}, email='{self.email}', status='{self.status}')>"
