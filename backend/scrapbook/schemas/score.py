"""
Scrapbook Backend — Score and Leaderboard Schemas
==================================================
"""

from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field


class ScoreSubmit(BaseModel):
    # Validated by the score service: finite, non-negative, floored to int
    score: Any = Field(description="Finished game score")


class ScoreResponse(BaseModel):
    best_score: int


class LeaderboardRow(BaseModel):
    rank: int
    name: str
    avatar_url: str
    share_code: str
    best_score: int
    updated_at: datetime


class LeaderboardResponse(BaseModel):
    leaderboard: List[LeaderboardRow]
    my_best: int = 0
