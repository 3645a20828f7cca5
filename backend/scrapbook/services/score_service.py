"""
Scrapbook Backend — Score Ledger Service
=========================================

What:  Best-score-per-user bookkeeping for the mini-game and its leaderboard.
How:   One `INSERT ... ON CONFLICT (user_id) DO UPDATE ... WHERE
       excluded.best_score > score_records.best_score` per submission, so
       the stored best never decreases and updated_at only moves when the
       best improves.

Leaderboard order:
    best_score DESC, updated_at ASC (first to reach a score ranks higher),
    then id ASC.
"""

import logging
import math
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.config import settings
from scrapbook.database import upsert_statement
from scrapbook.exceptions import ValidationError
from scrapbook.models import ScoreRecord, User
from scrapbook.models.user import utcnow
from scrapbook.schemas.score import LeaderboardRow

logger = logging.getLogger(__name__)

# Upper bound of the INTEGER column
MAX_SCORE = 2_147_483_647
MAX_LEADERBOARD_SIZE = 100


def coerce_score(score: Any) -> int:
    """
    Validate a submitted score and floor it to an int.

    Raises:
        ValidationError: not a number, NaN/infinite, negative or too large.
    """
    if isinstance(score, bool) or score is None:
        raise ValidationError(message="Invalid score", field="score")
    try:
        value = float(score)
    except (TypeError, ValueError):
        raise ValidationError(message="Invalid score", field="score")
    if not math.isfinite(value) or value < 0:
        raise ValidationError(message="Invalid score", field="score")
    floored = math.floor(value)
    if floored > MAX_SCORE:
        raise ValidationError(
            message="Invalid score",
            field="score",
            context={"max": MAX_SCORE},
        )
    return floored


class ScoreService:
    async def submit(self, db: AsyncSession, user_id: int, score: Any) -> int:
        """Record `score` for `user_id`; returns the best score after the call."""
        value = coerce_score(score)
        table = ScoreRecord.__table__

        stmt = upsert_statement(db, table).values(
            user_id=user_id,
            best_score=value,
            updated_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                "best_score": stmt.excluded.best_score,
                "updated_at": stmt.excluded.updated_at,
            },
            where=stmt.excluded.best_score > table.c.best_score,
        )
        await db.flush()
        await db.execute(stmt)

        best = await self.best_for(db, user_id)
        logger.debug("Score %d submitted by user %s; best is %d", value, user_id, best)
        return best

    async def best_for(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            select(ScoreRecord.best_score).where(ScoreRecord.user_id == user_id)
        )
        best: Optional[int] = result.scalar_one_or_none()
        return best or 0

    async def leaderboard(
        self, db: AsyncSession, limit: Optional[int] = None
    ) -> List[LeaderboardRow]:
        size = limit if limit is not None else settings.leaderboard_default_size
        size = max(0, min(int(size), MAX_LEADERBOARD_SIZE))

        result = await db.execute(
            select(User, ScoreRecord.best_score, ScoreRecord.updated_at)
            .join(ScoreRecord, ScoreRecord.user_id == User.id)
            .order_by(
                ScoreRecord.best_score.desc(),
                ScoreRecord.updated_at.asc(),
                ScoreRecord.id.asc(),
            )
            .limit(size)
        )
        return [
            LeaderboardRow(
                rank=position,
                name=user.effective_name,
                avatar_url=user.avatar_url,
                share_code=user.share_code,
                best_score=best_score,
                updated_at=updated_at,
            )
            for position, (user, best_score, updated_at) in enumerate(result.all(), start=1)
        ]


score_service = ScoreService()
