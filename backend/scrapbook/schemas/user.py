"""
Scrapbook Backend — User Schemas
=================================

Public projections of the `users` table. `name` is always the effective
display name (alias over provider name) and `avatar_url` the resolved
avatar, so clients never repeat that fallback logic.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from scrapbook.models.user import User


class PersonSummary(BaseModel):
    """Row in member search results and entry author references."""
    id: int
    name: str
    email: str
    share_code: str
    avatar_url: str
    bio: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "PersonSummary":
        return cls(
            id=user.id,
            name=user.effective_name,
            email=user.email,
            share_code=user.share_code,
            avatar_url=user.avatar_url,
            bio=user.bio,
        )


class UserProfile(BaseModel):
    """The signed-in user's own profile."""
    id: int
    email: str
    display_name: str
    alias: Optional[str] = None
    name: str
    bio: Optional[str] = None
    avatar_url: str
    share_code: str
    created_at: datetime
    last_login_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            alias=user.alias,
            name=user.effective_name,
            bio=user.bio,
            avatar_url=user.avatar_url,
            share_code=user.share_code,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class MyProfileResponse(BaseModel):
    profile: UserProfile
    best_score: int = 0
    write_url: str = Field(description="Link others use to post on this page")
    page_url: str = Field(description="Public link to this page")


class ProfileUpdate(BaseModel):
    """Owner-editable fields. Omitted fields are left alone; blanks clear them."""
    alias: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=5000)
