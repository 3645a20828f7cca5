"""
Scrapbook Backend — Page and Entry Schemas
===========================================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from scrapbook.schemas.admin import DailyCount, NamedCount
from scrapbook.schemas.user import PersonSummary


class EntryResponse(BaseModel):
    """One post as shown on a page."""
    id: int
    kind: str = Field(description="text, image or audio")
    text_content: Optional[str] = None
    file_url: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    author_name: str
    author_share_code: str
    created_at: datetime


class PageView(BaseModel):
    """A user's scrapbook page: owner, posts (newest first) and game best."""
    owner: PersonSummary
    entries: List[EntryResponse]
    best_score: int = 0


class EntryCreate(BaseModel):
    text_content: str = Field(min_length=1, max_length=5000)


class PeopleResponse(BaseModel):
    query: str
    people: List[PersonSummary]


class CommunityStats(BaseModel):
    """Numbers every member can see: post totals, busiest pages, recent days."""
    total_users: int
    total_posts: int
    text_posts: int
    image_posts: int
    audio_posts: int
    top_pages: List[NamedCount]
    recent_activity: List[DailyCount]
