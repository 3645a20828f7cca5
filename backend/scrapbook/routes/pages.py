"""
Scrapbook Backend — Page Route Handlers
========================================

What:  Own profile, member search, page view, posting onto a page and the
       community stats page.
Who:   Called by the member-facing frontend.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.database import get_db_session
from scrapbook.exceptions import NotFoundError
from scrapbook.models import User
from scrapbook.schemas.common import ErrorResponse
from scrapbook.schemas.page import (
    CommunityStats,
    EntryCreate,
    EntryResponse,
    PageView,
    PeopleResponse,
)
from scrapbook.schemas.user import MyProfileResponse, PersonSummary, ProfileUpdate
from scrapbook.security import Principal, require_member, require_user
from scrapbook.services.admin_service import admin_service
from scrapbook.services.page_service import page_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pages"])


@router.get("/me", response_model=MyProfileResponse, summary="Own profile")
async def get_me(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> MyProfileResponse:
    return await page_service.my_profile(db, user)


@router.patch("/me", response_model=MyProfileResponse, summary="Edit alias and bio")
async def update_me(
    payload: ProfileUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> MyProfileResponse:
    await page_service.update_profile(db, user, **payload.model_dump(exclude_unset=True))
    return await page_service.my_profile(db, user)


@router.get("/people", response_model=PeopleResponse, summary="Search members")
async def search_people(
    q: str = Query(default="", max_length=200, description="Name, alias or email fragment"),
    principal: Principal = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
) -> PeopleResponse:
    viewer_id = principal.user.id if principal.user is not None else None
    people = await page_service.search_people(db, viewer_id=viewer_id, q=q)
    return PeopleResponse(query=q.strip(), people=[PersonSummary.from_user(p) for p in people])


@router.get(
    "/pages/{share_code}",
    response_model=PageView,
    responses={404: {"description": "No such page", "model": ErrorResponse}},
    summary="View a scrapbook page",
)
async def get_page(
    share_code: str,
    principal: Principal = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
) -> PageView:
    view = await page_service.page_view(db, share_code)
    if view is None:
        raise NotFoundError(resource="Page", resource_id=share_code)
    return view


@router.post(
    "/pages/{share_code}/entries",
    response_model=EntryResponse,
    status_code=201,
    responses={404: {"description": "No such page", "model": ErrorResponse}},
    summary="Post a text entry onto a page",
)
async def post_entry(
    share_code: str,
    payload: EntryCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> EntryResponse:
    entry = await page_service.post_text_entry(db, user, share_code, payload.text_content)
    if entry is None:
        raise NotFoundError(resource="Page", resource_id=share_code)
    return EntryResponse(
        id=entry.id,
        kind=entry.kind,
        text_content=entry.text_content,
        author_name=user.effective_name,
        author_share_code=user.share_code,
        created_at=entry.created_at,
    )


@router.get("/stats", response_model=CommunityStats, summary="Community stats")
async def community_stats(
    principal: Principal = Depends(require_member),
    db: AsyncSession = Depends(get_db_session),
) -> CommunityStats:
    return await admin_service.community_stats(db)
