"""
Scrapbook Backend — Game Score Route Handlers
==============================================
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.database import get_db_session
from scrapbook.models import User
from scrapbook.schemas.common import ErrorResponse
from scrapbook.schemas.score import LeaderboardResponse, ScoreResponse, ScoreSubmit
from scrapbook.security import Principal, require_member, require_user
from scrapbook.services.score_service import score_service

router = APIRouter(prefix="/api", tags=["Scores"])


@router.post(
    "/scores",
    response_model=ScoreResponse,
    responses={400: {"description": "Invalid score", "model": ErrorResponse}},
    summary="Submit a finished game score",
)
async def submit_score(
    payload: ScoreSubmit,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> ScoreResponse:
    best = await score_service.submit(db, user.id, payload.score)
    return ScoreResponse(best_score=best)


@router.get("/leaderboard", response_model=LeaderboardResponse, summary="Top scores")
async def leaderboard(
    limit: Optional[int] = Query(default=None, description="Rows to return, clamped to 0..100"),
    principal: Principal = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
) -> LeaderboardResponse:
    rows = await score_service.leaderboard(db, limit)
    my_best = 0
    if principal.user is not None:
        my_best = await score_service.best_for(db, principal.user.id)
    return LeaderboardResponse(leaderboard=rows, my_best=my_best)
