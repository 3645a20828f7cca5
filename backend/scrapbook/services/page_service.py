"""
Scrapbook Backend — Page Service
=================================

What:  Member-facing page operations: finding people, viewing a page,
       posting onto a page and editing one's own profile.
Who:   Called by routes/pages.py.

Search:
    A fixed set of predicates (display name, alias, email) with the user's
    text bound as a parameter and LIKE wildcards escaped. No query text is
    ever concatenated into SQL.

Entries:
    `create_entry` is the single writer of member posts and checks the
    kind/content invariant before the database CHECK constraint would.
    Media entries arrive with a stored file path from the upload layer.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from scrapbook.config import settings
from scrapbook.exceptions import ValidationError
from scrapbook.models import Entry, EntryKind, User
from scrapbook.models.user import utcnow
from scrapbook.schemas.page import EntryResponse, PageView
from scrapbook.schemas.user import MyProfileResponse, PersonSummary, UserProfile
from scrapbook.services.score_service import score_service

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 5000
MAX_ALIAS_LENGTH = 60
MAX_BIO_LENGTH = 500


def like_pattern(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def name_search_filter(q: str):
    """Case-insensitive substring match on display name, alias or email."""
    pattern = like_pattern(q)
    return or_(
        User.display_name.ilike(pattern, escape="\\"),
        User.alias.ilike(pattern, escape="\\"),
        User.email.ilike(pattern, escape="\\"),
    )


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    clean = (value or "").strip()
    return clean[:limit] if clean else None


class PageService:
    async def get_by_share_code(self, db: AsyncSession, share_code: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.share_code == share_code))
        return result.scalar_one_or_none()

    async def search_people(
        self, db: AsyncSession, viewer_id: Optional[int], q: str = ""
    ) -> List[User]:
        """Everyone but the viewer, optionally filtered, sorted by shown name."""
        query = select(User)
        if viewer_id is not None:
            query = query.where(User.id != viewer_id)
        q = (q or "").strip()
        if q:
            query = query.where(name_search_filter(q))
        query = query.order_by(
            func.coalesce(User.alias, User.display_name).asc(), User.id.asc()
        ).limit(settings.people_search_limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_entries(self, db: AsyncSession, target_user_id: int) -> List[EntryResponse]:
        author = aliased(User)
        result = await db.execute(
            select(Entry, author)
            .join(author, author.id == Entry.author_user_id)
            .where(Entry.target_user_id == target_user_id)
            .order_by(Entry.created_at.desc(), Entry.id.desc())
        )
        return [
            EntryResponse(
                id=entry.id,
                kind=entry.kind,
                text_content=entry.text_content,
                file_url=f"/{entry.file_path}" if entry.file_path else None,
                original_name=entry.original_name,
                mime_type=entry.mime_type,
                author_name=writer.effective_name,
                author_share_code=writer.share_code,
                created_at=entry.created_at,
            )
            for entry, writer in result.all()
        ]

    async def page_view(self, db: AsyncSession, share_code: str) -> Optional[PageView]:
        owner = await self.get_by_share_code(db, share_code)
        if owner is None:
            return None
        return PageView(
            owner=PersonSummary.from_user(owner),
            entries=await self.list_entries(db, owner.id),
            best_score=await score_service.best_for(db, owner.id),
        )

    async def create_entry(
        self,
        db: AsyncSession,
        target: User,
        author: User,
        kind: str,
        text_content: Optional[str] = None,
        file_path: Optional[str] = None,
        original_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Entry:
        """
        Write one entry onto `target`'s page.

        Raises:
            ValidationError: unknown kind, or content that does not match it.
        """
        try:
            entry_kind = EntryKind(kind)
        except ValueError:
            raise ValidationError(message=f"Unknown entry kind '{kind}'", field="kind")

        if entry_kind is EntryKind.TEXT:
            text = (text_content or "").strip()
            if not text:
                raise ValidationError(message="Please add some text.", field="text_content")
            if len(text) > MAX_TEXT_LENGTH:
                raise ValidationError(
                    message=f"Text is limited to {MAX_TEXT_LENGTH} characters.",
                    field="text_content",
                )
            entry = Entry(
                target_user_id=target.id,
                author_user_id=author.id,
                kind=entry_kind.value,
                text_content=text,
            )
        else:
            if not file_path or text_content:
                raise ValidationError(
                    message=f"{entry_kind.value} entries need a stored file and no text.",
                    field="file_path",
                )
            if mime_type and not mime_type.startswith(entry_kind.value + "/"):
                raise ValidationError(
                    message=f"MIME type '{mime_type}' does not match a {entry_kind.value} entry.",
                    field="mime_type",
                )
            entry = Entry(
                target_user_id=target.id,
                author_user_id=author.id,
                kind=entry_kind.value,
                file_path=file_path,
                original_name=original_name,
                mime_type=mime_type,
            )

        entry.created_at = utcnow()
        db.add(entry)
        await db.flush()
        logger.info(
            "User %s posted a %s entry to user %s", author.id, entry.kind, target.id
        )
        return entry

    async def post_text_entry(
        self, db: AsyncSession, author: User, share_code: str, text: str
    ) -> Optional[Entry]:
        """None when no page has this share code."""
        target = await self.get_by_share_code(db, share_code)
        if target is None:
            return None
        return await self.create_entry(
            db, target=target, author=author, kind=EntryKind.TEXT.value, text_content=text
        )

    async def update_profile(
        self, db: AsyncSession, user: User, **changes: Optional[str]
    ) -> User:
        """Apply only the fields passed; a blank or None value clears that field."""
        if "alias" in changes:
            user.alias = _clip(changes["alias"], MAX_ALIAS_LENGTH)
        if "bio" in changes:
            user.bio = _clip(changes["bio"], MAX_BIO_LENGTH)
        await db.flush()
        return user

    async def my_profile(self, db: AsyncSession, user: User) -> MyProfileResponse:
        base = settings.public_base_url.rstrip("/")
        return MyProfileResponse(
            profile=UserProfile.from_user(user),
            best_score=await score_service.best_for(db, user.id),
            write_url=f"{base}/write/{user.share_code}",
            page_url=f"{base}/profile/{user.share_code}",
        )


page_service = PageService()
