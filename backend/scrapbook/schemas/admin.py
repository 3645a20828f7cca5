"""
Scrapbook Backend — Administrator Console Schemas
==================================================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from scrapbook.schemas.user import UserProfile


class AccessRequestResponse(BaseModel):
    id: int
    email: str
    external_id: Optional[str] = None
    display_name: str
    picture_url: Optional[str] = None
    status: str
    requested_at: datetime
    reviewed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AccessRequestDetail(BaseModel):
    request: AccessRequestResponse
    existing_user: Optional[UserProfile] = Field(
        default=None,
        description="User already holding this email, if any",
    )


class AccessRequestList(BaseModel):
    status: Optional[str] = None
    requests: List[AccessRequestResponse]


class ApproveResponse(BaseModel):
    message: str
    user: UserProfile


class AllowedEmailCreate(BaseModel):
    email: str = Field(max_length=320)


class AllowedEmailResponse(BaseModel):
    id: int
    email: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminUserRow(BaseModel):
    id: int
    email: str
    display_name: str
    alias: Optional[str] = None
    bio: Optional[str] = None
    share_code: str
    created_at: datetime
    last_login_at: datetime

    model_config = {"from_attributes": True}


class DailyCount(BaseModel):
    day: str
    count: int


class NamedCount(BaseModel):
    name: str
    count: int


class MetricsResponse(BaseModel):
    """Usage numbers for the console dashboard."""
    total_users: int
    total_allowed_emails: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    total_posts: int
    text_posts: int
    image_posts: int
    audio_posts: int
    active_users_7d: int
    active_users_1d: int
    posts_per_user: float
    daily_posts: List[DailyCount]
    daily_signups: List[DailyCount]
    top_contributors: List[NamedCount]
    most_posted_pages: List[NamedCount]
