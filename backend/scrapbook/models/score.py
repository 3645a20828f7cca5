"""
Scrapbook Backend — ScoreRecord SQLAlchemy Model
=================================================

One row per user holding the best mini-game score. best_score only ever
grows: the score service upserts with a `WHERE excluded.best_score >
best_score` guard, and updated_at moves only when the best improves, so the
leaderboard can rank ties by who reached the score first.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from scrapbook.database import Base
from scrapbook.models.user import utcnow


class ScoreRecord(Base):
    __tablename__ = "score_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("best_score >= 0", name="ck_score_records_non_negative"),
        Index("idx_score_records_best_score", best_score.desc()),
    )

    def __repr__(self) -> str:
        return f"<ScoreRecord(user_id={self.user_id}, best_score={self.best_score})>"
