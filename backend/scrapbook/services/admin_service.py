"""
Scrapbook Backend — Administrator Console Service
==================================================

What:  User management, moderation, the usage dashboard and the
       member-facing community stats.
Who:   Called by routes/admin.py behind the admin principal, and by
       routes/pages.py for /api/stats.

Deleting a user removes every entry they wrote or received and their score
row before the user row itself. The foreign keys also cascade, but the
explicit deletes keep the behavior identical on databases where foreign key
enforcement is off.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.models import (
    AccessRequest,
    AccessRequestStatus,
    AllowedEmail,
    Entry,
    EntryKind,
    ScoreRecord,
    User,
)
from scrapbook.models.user import utcnow
from scrapbook.schemas.admin import DailyCount, MetricsResponse, NamedCount
from scrapbook.schemas.page import CommunityStats
from scrapbook.services.page_service import name_search_filter

logger = logging.getLogger(__name__)

USER_LIST_LIMIT = 200
METRIC_DAYS = 30
METRIC_TOP_N = 8
STATS_DAYS = 14
STATS_TOP_N = 10


async def _count(db: AsyncSession, query) -> int:
    return int((await db.execute(query)).scalar_one() or 0)


def _entries_of(kind: EntryKind):
    return select(func.count(Entry.id)).where(Entry.kind == kind.value)


class AdminService:
    async def list_users(
        self, db: AsyncSession, q: Optional[str] = None, limit: int = USER_LIST_LIMIT
    ) -> List[User]:
        """Newest accounts first, optionally filtered by name or email."""
        query = select(User)
        q = (q or "").strip()
        if q:
            query = query.where(name_search_filter(q))
        query = query.order_by(User.created_at.desc(), User.id.desc()).limit(
            max(1, min(limit, USER_LIST_LIMIT))
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def delete_user(self, db: AsyncSession, user_id: int) -> bool:
        """False when no user has this id."""
        user = await db.get(User, user_id)
        if user is None:
            return False
        email = user.email

        await db.execute(
            delete(Entry).where(
                or_(Entry.target_user_id == user_id, Entry.author_user_id == user_id)
            )
        )
        await db.execute(delete(ScoreRecord).where(ScoreRecord.user_id == user_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.flush()

        logger.info("Deleted user %s (%s) with their entries and score", user_id, email)
        return True

    async def delete_entry(self, db: AsyncSession, entry_id: int) -> bool:
        result = await db.execute(delete(Entry).where(Entry.id == entry_id))
        if not result.rowcount:
            return False
        logger.info("Deleted entry %s", entry_id)
        return True

    # ── Dashboard ─────────────────────────────────────────────────────────

    async def _daily(
        self, db: AsyncSession, column, days: int = METRIC_DAYS
    ) -> List[DailyCount]:
        """Counts for the most recent `days` days that have any rows, oldest first."""
        day = func.date(column)
        result = await db.execute(
            select(day.label("day"), func.count().label("count"))
            .group_by(day)
            .order_by(day.desc())
            .limit(days)
        )
        rows = [DailyCount(day=str(d), count=c) for d, c in result.all()]
        rows.reverse()
        return rows

    async def _top_contributors(self, db: AsyncSession) -> List[NamedCount]:
        name = func.coalesce(User.alias, User.display_name)
        posts = func.count(Entry.id)
        result = await db.execute(
            select(name, posts)
            .join(Entry, Entry.author_user_id == User.id)
            .group_by(User.id, User.alias, User.display_name)
            .order_by(posts.desc(), name.asc())
            .limit(METRIC_TOP_N)
        )
        return [NamedCount(name=n, count=c) for n, c in result.all()]

    async def _most_posted_pages(
        self, db: AsyncSession, limit: int = METRIC_TOP_N
    ) -> List[NamedCount]:
        name = func.coalesce(User.alias, User.display_name)
        posts = func.count(Entry.id)
        result = await db.execute(
            select(name, posts)
            .outerjoin(Entry, Entry.target_user_id == User.id)
            .group_by(User.id, User.alias, User.display_name)
            .order_by(posts.desc(), name.asc())
            .limit(limit)
        )
        return [NamedCount(name=n, count=c) for n, c in result.all()]

    async def metrics(self, db: AsyncSession) -> MetricsResponse:
        now = utcnow()

        def requests_with(status: AccessRequestStatus):
            return select(func.count(AccessRequest.id)).where(
                AccessRequest.status == status.value
            )

        def active_since(delta: timedelta):
            return select(func.count(User.id)).where(User.last_login_at >= now - delta)

        total_users = await _count(db, select(func.count(User.id)))
        total_posts = await _count(db, select(func.count(Entry.id)))

        return MetricsResponse(
            total_users=total_users,
            total_allowed_emails=await _count(db, select(func.count(AllowedEmail.id))),
            pending_requests=await _count(db, requests_with(AccessRequestStatus.PENDING)),
            approved_requests=await _count(db, requests_with(AccessRequestStatus.APPROVED)),
            rejected_requests=await _count(db, requests_with(AccessRequestStatus.REJECTED)),
            total_posts=total_posts,
            text_posts=await _count(db, _entries_of(EntryKind.TEXT)),
            image_posts=await _count(db, _entries_of(EntryKind.IMAGE)),
            audio_posts=await _count(db, _entries_of(EntryKind.AUDIO)),
            active_users_7d=await _count(db, active_since(timedelta(days=7))),
            active_users_1d=await _count(db, active_since(timedelta(days=1))),
            posts_per_user=round(total_posts / total_users, 2) if total_users else 0.0,
            daily_posts=await self._daily(db, Entry.created_at),
            daily_signups=await self._daily(db, User.created_at),
            top_contributors=await self._top_contributors(db),
            most_posted_pages=await self._most_posted_pages(db),
        )


    async def community_stats(self, db: AsyncSession) -> CommunityStats:
        """The member-facing stats page: post totals, busiest pages, recent days."""
        return CommunityStats(
            total_users=await _count(db, select(func.count(User.id))),
            total_posts=await _count(db, select(func.count(Entry.id))),
            text_posts=await _count(db, _entries_of(EntryKind.TEXT)),
            image_posts=await _count(db, _entries_of(EntryKind.IMAGE)),
            audio_posts=await _count(db, _entries_of(EntryKind.AUDIO)),
            top_pages=await self._most_posted_pages(db, STATS_TOP_N),
            recent_activity=await self._daily(db, Entry.created_at, STATS_DAYS),
        )


admin_service = AdminService()
