"""
Scrapbook Backend — Allowlist Service
======================================

Administrator-managed set of emails allowed to self-provision an account on
first sign-in. Adding is an insert-or-ignore on the unique email column, so
re-adding an address returns the existing row instead of failing.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.database import insert_ignore
from scrapbook.exceptions import ValidationError
from scrapbook.models import AllowedEmail
from scrapbook.models.user import utcnow
from scrapbook.services.identity_service import normalize_email
from scrapbook.services.policy import EmailDomainPolicy, default_policy

logger = logging.getLogger(__name__)


class AllowlistService:
    def __init__(self, policy: Optional[EmailDomainPolicy] = None):
        self.policy = policy or default_policy()

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[AllowedEmail]:
        result = await db.execute(
            select(AllowedEmail).where(func.lower(AllowedEmail.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def is_allowed(self, db: AsyncSession, email: str) -> bool:
        clean = (email or "").strip().lower()
        if not clean:
            return False
        return await self.get_by_email(db, clean) is not None

    async def add(self, db: AsyncSession, email: str) -> AllowedEmail:
        """
        Allowlist `email` (idempotent).

        Raises:
            ValidationError: malformed email or a domain outside the policy.
        """
        clean = normalize_email(email)
        if not self.policy.is_permitted(clean):
            raise ValidationError(
                message=f"Only {self.policy.describe()} emails can be allowlisted.",
                field="email",
            )

        result = await db.execute(
            insert_ignore(db, AllowedEmail.__table__, email=clean, created_at=utcnow())
        )
        if result.rowcount:
            logger.info("Allowlisted %s", clean)
        return await self.get_by_email(db, clean)

    async def remove(self, db: AsyncSession, entry_id: int) -> bool:
        """False when no entry has this id."""
        entry = await db.get(AllowedEmail, entry_id)
        if entry is None:
            return False
        await db.delete(entry)
        await db.flush()
        logger.info("Removed %s from the allowlist", entry.email)
        return True

    async def list(self, db: AsyncSession) -> List[AllowedEmail]:
        result = await db.execute(select(AllowedEmail).order_by(AllowedEmail.email.asc()))
        return list(result.scalars().all())


allowlist_service = AllowlistService()
