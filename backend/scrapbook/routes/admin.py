"""
Scrapbook Backend — Administrator Console Route Handlers
=========================================================

What:  Access-request review, allowlist management, user and entry
       moderation, and the usage dashboard.
Who:   Called by the admin console. Every route requires the admin token.

Missing ids come back from the services as None / False and are turned into
404s here.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.database import get_db_session
from scrapbook.exceptions import NotFoundError
from scrapbook.schemas.admin import (
    AccessRequestDetail,
    AccessRequestList,
    AccessRequestResponse,
    AdminUserRow,
    AllowedEmailCreate,
    AllowedEmailResponse,
    ApproveResponse,
    MetricsResponse,
)
from scrapbook.schemas.common import ErrorResponse, MessageResponse
from scrapbook.schemas.user import UserProfile
from scrapbook.security import require_admin
from scrapbook.services.access_service import access_service
from scrapbook.services.admin_service import admin_service
from scrapbook.services.allowlist_service import allowlist_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    responses={
        401: {"description": "No admin session", "model": ErrorResponse},
        403: {"description": "Not an administrator", "model": ErrorResponse},
    },
)

NOT_FOUND = {404: {"description": "Not found", "model": ErrorResponse}}


# ── Access requests ───────────────────────────────────────────────────────

@router.get("/requests", response_model=AccessRequestList, summary="List access requests")
async def list_requests(
    status: Optional[str] = Query(
        default="pending",
        description="pending, approved, rejected or all",
    ),
    db: AsyncSession = Depends(get_db_session),
) -> AccessRequestList:
    requests = await access_service.list_requests(db, status)
    return AccessRequestList(
        status=status,
        requests=[AccessRequestResponse.model_validate(r) for r in requests],
    )


@router.get(
    "/requests/{request_id}",
    response_model=AccessRequestDetail,
    responses=NOT_FOUND,
    summary="One access request and any user already holding its email",
)
async def get_request(
    request_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> AccessRequestDetail:
    detail = await access_service.get_request_detail(db, request_id)
    if detail is None:
        raise NotFoundError(resource="Access request", resource_id=str(request_id))
    request, existing = detail
    return AccessRequestDetail(
        request=AccessRequestResponse.model_validate(request),
        existing_user=UserProfile.from_user(existing) if existing is not None else None,
    )


@router.post(
    "/requests/{request_id}/approve",
    response_model=ApproveResponse,
    responses=NOT_FOUND,
    summary="Approve a request and provision its user",
)
async def approve_request(
    request_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> ApproveResponse:
    user = await access_service.approve(db, request_id)
    if user is None:
        raise NotFoundError(resource="Access request", resource_id=str(request_id))
    return ApproveResponse(
        message=f"Approved and added {user.email} to current users.",
        user=UserProfile.from_user(user),
    )


@router.post(
    "/requests/{request_id}/reject",
    response_model=AccessRequestResponse,
    responses=NOT_FOUND,
    summary="Reject a request",
)
async def reject_request(
    request_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> AccessRequestResponse:
    request = await access_service.reject(db, request_id)
    if request is None:
        raise NotFoundError(resource="Access request", resource_id=str(request_id))
    return AccessRequestResponse.model_validate(request)


# ── Allowlist ─────────────────────────────────────────────────────────────

@router.get("/allowed-emails", response_model=list[AllowedEmailResponse])
async def list_allowed_emails(
    db: AsyncSession = Depends(get_db_session),
) -> list[AllowedEmailResponse]:
    entries = await allowlist_service.list(db)
    return [AllowedEmailResponse.model_validate(e) for e in entries]


@router.post("/allowed-emails", response_model=AllowedEmailResponse, status_code=201)
async def add_allowed_email(
    payload: AllowedEmailCreate,
    db: AsyncSession = Depends(get_db_session),
) -> AllowedEmailResponse:
    entry = await allowlist_service.add(db, payload.email)
    return AllowedEmailResponse.model_validate(entry)


@router.delete("/allowed-emails/{entry_id}", response_model=MessageResponse, responses=NOT_FOUND)
async def remove_allowed_email(
    entry_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    if not await allowlist_service.remove(db, entry_id):
        raise NotFoundError(resource="Allowlisted email", resource_id=str(entry_id))
    return MessageResponse(message="Allowlisted email removed.")


# ── Users and entries ─────────────────────────────────────────────────────

@router.get("/users", response_model=list[AdminUserRow])
async def list_users(
    q: str = Query(default="", max_length=200),
    db: AsyncSession = Depends(get_db_session),
) -> list[AdminUserRow]:
    users = await admin_service.list_users(db, q=q)
    return [AdminUserRow.model_validate(u) for u in users]


@router.delete("/users/{user_id}", response_model=MessageResponse, responses=NOT_FOUND)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    if not await admin_service.delete_user(db, user_id):
        raise NotFoundError(resource="User", resource_id=str(user_id))
    return MessageResponse(message="User deleted.")


@router.delete("/entries/{entry_id}", response_model=MessageResponse, responses=NOT_FOUND)
async def delete_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    if not await admin_service.delete_entry(db, entry_id):
        raise NotFoundError(resource="Entry", resource_id=str(entry_id))
    return MessageResponse(message="Entry deleted.")


# ── Dashboard ─────────────────────────────────────────────────────────────

@router.get("/metrics", response_model=MetricsResponse)
async def metrics(db: AsyncSession = Depends(get_db_session)) -> MetricsResponse:
    return await admin_service.metrics(db)
