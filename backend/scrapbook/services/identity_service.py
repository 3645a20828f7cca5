"""
Scrapbook Backend — Identity Resolution Service
================================================

What:  Maps a verified external identity assertion onto a local User row.
How:   Normalizes the assertion, then matches by external id, then by email.
       Provisioning inserts a new row with a fresh share code.
Who:   Called by the access service (sign-in, approval) and at startup.

Resolution order:
    1. external id matches    → refresh email, name, avatar, last_login_at
    2. email matches          → attach external id, refresh name, avatar,
                                last_login_at
    3. no match               → None; the access workflow decides what next

Every successful resolution or provisioning also makes sure the user's page
carries the welcome entry. That entry is keyed on (target, 'welcome') by a
unique constraint, so it exists at most once per page however often this
runs.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.config import settings
from scrapbook.database import insert_ignore
from scrapbook.exceptions import DatabaseError, ValidationError
from scrapbook.models import Entry, EntryKind, User
from scrapbook.models.user import utcnow
from scrapbook.schemas.identity import IdentityAssertion

logger = logging.getLogger(__name__)

WELCOME_SYSTEM_KEY = "welcome"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHOTO_SIZE_RE = re.compile(r"=s\d+-c$")


def normalize_email(raw: Optional[str]) -> str:
    """Trim and lowercase; reject anything that is not `local@domain.tld`."""
    email = (raw or "").strip().lower()
    if not email:
        raise ValidationError(message="An email address is required", field="email")
    if not _EMAIL_RE.match(email):
        raise ValidationError(
            message=f"'{email}' is not a valid email address",
            field="email",
        )
    return email


def normalize_picture_url(raw: Optional[str]) -> Optional[str]:
    """Blank → None; provider thumbnails are bumped to the 256px variant."""
    url = (raw or "").strip()
    if not url:
        return None
    return _PHOTO_SIZE_RE.sub("=s256-c", url)


def new_share_code() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Identity:
    """An identity assertion after normalization."""
    email: str
    display_name: str
    external_id: Optional[str] = None
    picture_url: Optional[str] = None


def normalize_identity(assertion: IdentityAssertion) -> Identity:
    email = normalize_email(assertion.email)
    external_id = (assertion.external_id or "").strip() or None
    display_name = (assertion.display_name or "").strip() or email
    return Identity(
        email=email,
        display_name=display_name,
        external_id=external_id,
        picture_url=normalize_picture_url(assertion.avatar_url),
    )


class IdentityService:
    """
    Stateless identity resolution over a session passed into each call.

    Writes are flushed, never committed; the request's session dependency
    owns the transaction.
    """

    async def get_user(self, db: AsyncSession, user_id: int) -> Optional[User]:
        return await db.get(User, user_id)

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_by_external_id(self, db: AsyncSession, external_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.external_id == external_id))
        return result.scalar_one_or_none()

    async def find_user(
        self,
        db: AsyncSession,
        email: str,
        external_id: Optional[str] = None,
    ) -> Optional[User]:
        """External id wins over email when both would match."""
        if external_id:
            user = await self.get_by_external_id(db, external_id)
            if user is not None:
                return user
        return await self.get_by_email(db, email)

    async def resolve(self, db: AsyncSession, assertion: IdentityAssertion) -> Optional[User]:
        """
        Match an assertion to an existing user and refresh it.

        Returns:
            The refreshed User, or None when neither the external id nor the
            email is known.

        Raises:
            ValidationError: the assertion carries no usable email.
        """
        identity = normalize_identity(assertion)
        now = utcnow()

        user = None
        if identity.external_id:
            user = await self.get_by_external_id(db, identity.external_id)

        if user is not None:
            if user.email != identity.email:
                holder = await self.get_by_email(db, identity.email)
                if holder is None:
                    user.email = identity.email
                else:
                    # Another row owns the new email; keep the old one.
                    logger.warning(
                        "User %s reported email %s already held by user %s",
                        user.id, identity.email, holder.id,
                    )
        else:
            user = await self.get_by_email(db, identity.email)
            if user is None:
                return None
            if identity.external_id:
                user.external_id = identity.external_id

        user.display_name = identity.display_name
        user.picture_url = identity.picture_url
        user.last_login_at = now
        await db.flush()

        logger.info("Resolved identity %s to user %s", identity.email, user.id)
        await self.ensure_welcome_entry(db, user.id)
        return user

    async def provision(
        self,
        db: AsyncSession,
        email: str,
        display_name: Optional[str] = None,
        external_id: Optional[str] = None,
        picture_url: Optional[str] = None,
    ) -> User:
        """
        Resolve-or-create the user for `email`.

        The insert is an insert-or-ignore on the email constraint followed by
        a read, so concurrent provisioning of one email still leaves exactly
        one row.
        """
        email = normalize_email(email)
        external_id = (external_id or "").strip() or None

        user = await self.find_user(db, email, external_id)
        if user is None:
            now = utcnow()
            await db.flush()
            await db.execute(
                insert_ignore(
                    db,
                    User.__table__,
                    external_id=external_id,
                    email=email,
                    display_name=(display_name or "").strip() or email,
                    picture_url=normalize_picture_url(picture_url),
                    share_code=new_share_code(),
                    created_at=now,
                    last_login_at=now,
                )
            )
            user = await self.get_by_email(db, email)
            if user is None:
                raise DatabaseError(
                    message="Could not create the account. Please try again.",
                    context={"email": email},
                )
            logger.info("Provisioned user %s for %s", user.id, email)
        elif external_id and not user.external_id:
            user.external_id = external_id
            await db.flush()

        await self.ensure_welcome_entry(db, user.id)
        return user

    async def _welcome_author(self, db: AsyncSession) -> User:
        email = settings.welcome_author_email.strip().lower()
        author = await self.get_by_email(db, email)
        if author is not None:
            return author

        now = utcnow()
        await db.execute(
            insert_ignore(
                db,
                User.__table__,
                external_id=settings.welcome_author_external_id,
                email=email,
                display_name=settings.welcome_author_name,
                share_code=new_share_code(),
                created_at=now,
                last_login_at=now,
            )
        )
        return await self.get_by_email(db, email)

    async def ensure_welcome_entry(self, db: AsyncSession, user_id: int) -> bool:
        """Insert the welcome entry on `user_id`'s page; True if it was new."""
        author = await self._welcome_author(db)
        result = await db.execute(
            insert_ignore(
                db,
                Entry.__table__,
                target_user_id=user_id,
                author_user_id=author.id,
                kind=EntryKind.TEXT.value,
                text_content=settings.welcome_message,
                system_key=WELCOME_SYSTEM_KEY,
                created_at=utcnow(),
            )
        )
        created = result.rowcount > 0
        if created:
            logger.debug("Welcome entry added to user %s", user_id)
        return created

    async def seed_welcome_entries(self, db: AsyncSession) -> int:
        """Backfill the welcome entry on every page; returns how many were added."""
        await self._welcome_author(db)
        user_ids = (await db.execute(select(User.id))).scalars().all()
        added = 0
        for user_id in user_ids:
            if await self.ensure_welcome_entry(db, user_id):
                added += 1
        if added:
            logger.info("Seeded %d welcome entries", added)
        return added


identity_service = IdentityService()
