"""
Scrapbook Backend — Access-Control Workflow
============================================

What:  Decides whether a verified identity may establish a session, and
       runs the administrator approve/reject decisions on queued requests.
Who:   Called by the sign-in routes and the admin console routes.

Sign-in flow:
    ┌──────────────┐   no    ┌─────────────┐
    │ domain ok?   │───────▶ │ 403 denied  │
    └──────┬───────┘         └─────────────┘
           │ yes
    ┌──────▼───────┐  match  ┌─────────────┐
    │ resolve user │───────▶ │ signed in   │  (allowlist not consulted)
    └──────┬───────┘         └─────────────┘
           │ none
    ┌──────▼───────┐   yes   ┌─────────────┐
    │ allowlisted? │───────▶ │ provision,  │
    └──────┬───────┘         │ signed in   │
           │ no              └─────────────┘
    ┌──────▼───────┐   yes   ┌─────────────────────────┐
    │ pending req? │───────▶ │ pending: already_pending │
    └──────┬───────┘         └─────────────────────────┘
           │ no
    ┌──────▼───────┐         ┌─────────────────────────┐
    │ queue request│───────▶ │ pending: submitted       │
    └──────────────┘         └─────────────────────────┘

Request status only moves pending → approved or pending → rejected.
"""

import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scrapbook.config import settings
from scrapbook.database import insert_ignore
from scrapbook.exceptions import PermissionDeniedError, ValidationError
from scrapbook.models import AccessRequest, AccessRequestStatus, User
from scrapbook.models.user import utcnow
from scrapbook.schemas.identity import IdentityAssertion
from scrapbook.services.allowlist_service import AllowlistService, allowlist_service
from scrapbook.services.identity_service import (
    IdentityService,
    identity_service,
    normalize_email,
    normalize_identity,
)
from scrapbook.services.policy import EmailDomainPolicy, default_policy

logger = logging.getLogger(__name__)


class PendingReason(str, enum.Enum):
    SUBMITTED = "submitted"
    ALREADY_PENDING = "already_pending"


PENDING_MESSAGES = {
    PendingReason.SUBMITTED: "Access request submitted. Please retry after approval.",
    PendingReason.ALREADY_PENDING: "Access request already pending approval.",
}


@dataclass
class SignInResult:
    """Either `user` (session allowed) or `pending_reason` (session refused)."""
    user: Optional[User] = None
    pending_reason: Optional[PendingReason] = None
    request: Optional[AccessRequest] = None

    @property
    def signed_in(self) -> bool:
        return self.user is not None

    @property
    def message(self) -> str:
        if self.pending_reason is None:
            return "Signed in."
        return PENDING_MESSAGES[self.pending_reason]


def parse_status(status: Optional[str]) -> Optional[AccessRequestStatus]:
    """None / '' / 'all' mean no filter; anything else must be a real status."""
    if status is None or status.strip().lower() in ("", "all"):
        return None
    try:
        return AccessRequestStatus(status.strip().lower())
    except ValueError:
        raise ValidationError(
            message=f"Unknown request status '{status}'",
            field="status",
            context={"allowed": [s.value for s in AccessRequestStatus]},
        )


class AccessService:
    def __init__(
        self,
        identity: Optional[IdentityService] = None,
        allowlist: Optional[AllowlistService] = None,
        policy: Optional[EmailDomainPolicy] = None,
    ):
        self.identity = identity or identity_service
        self.allowlist = allowlist or allowlist_service
        self.policy = policy or default_policy()

    # ── Sign-in ───────────────────────────────────────────────────────────

    async def sign_in(self, db: AsyncSession, assertion: IdentityAssertion) -> SignInResult:
        """
        Resolve an assertion to a user or queue it for review.

        Raises:
            ValidationError: no usable email in the assertion.
            PermissionDeniedError: the email domain may not sign in.
        """
        identity = normalize_identity(assertion)
        if not self.policy.is_permitted(identity.email):
            logger.warning("Sign-in refused for %s: domain not permitted", identity.email)
            raise PermissionDeniedError(
                message=f"Unauthorized: only {self.policy.describe()} email IDs are allowed.",
                context={"email": identity.email},
            )

        user = await self.identity.resolve(db, assertion)
        if user is not None:
            return SignInResult(user=user)

        if await self.allowlist.is_allowed(db, identity.email):
            user = await self.identity.provision(
                db,
                email=identity.email,
                display_name=identity.display_name,
                external_id=identity.external_id,
                picture_url=identity.picture_url,
            )
            logger.info("Allowlisted email %s self-provisioned user %s", identity.email, user.id)
            return SignInResult(user=user)

        pending = await self.latest_pending(db, identity.email)
        if pending is not None:
            return SignInResult(pending_reason=PendingReason.ALREADY_PENDING, request=pending)

        result = await db.execute(
            insert_ignore(
                db,
                AccessRequest.__table__,
                email=identity.email,
                external_id=identity.external_id,
                display_name=identity.display_name,
                picture_url=identity.picture_url,
                status=AccessRequestStatus.PENDING.value,
                requested_at=utcnow(),
            )
        )
        pending = await self.latest_pending(db, identity.email)
        if not result.rowcount:
            # Lost a race with a concurrent sign-in for the same email
            return SignInResult(pending_reason=PendingReason.ALREADY_PENDING, request=pending)

        logger.info("Access request %s queued for %s", pending.id, identity.email)
        return SignInResult(pending_reason=PendingReason.SUBMITTED, request=pending)

    async def latest_pending(self, db: AsyncSession, email: str) -> Optional[AccessRequest]:
        result = await db.execute(
            select(AccessRequest)
            .where(
                AccessRequest.email == email,
                AccessRequest.status == AccessRequestStatus.PENDING.value,
            )
            .order_by(AccessRequest.requested_at.desc(), AccessRequest.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ── Administrator decisions ───────────────────────────────────────────

    async def get_request(self, db: AsyncSession, request_id: int) -> Optional[AccessRequest]:
        return await db.get(AccessRequest, request_id)

    async def get_request_detail(
        self, db: AsyncSession, request_id: int
    ) -> Optional[Tuple[AccessRequest, Optional[User]]]:
        """The request plus the user already holding its email, if any."""
        request = await self.get_request(db, request_id)
        if request is None:
            return None
        existing = await self.identity.get_by_email(db, request.email.strip().lower())
        return request, existing

    async def approve(self, db: AsyncSession, request_id: int) -> Optional[User]:
        """
        Provision (or link) the requester and mark the request approved.

        Returns None when the request does not exist. Approving an already
        approved request re-runs provisioning, which finds the same user.

        Raises:
            ValidationError: the request was already rejected, or its email
                is unusable.
        """
        request = await self.get_request(db, request_id)
        if request is None:
            return None
        if request.status == AccessRequestStatus.REJECTED.value:
            raise ValidationError(
                message="This request was already rejected and cannot be approved.",
                context={"request_id": request_id},
            )

        email = normalize_email(request.email)
        user = await self.identity.provision(
            db,
            email=email,
            display_name=request.display_name,
            external_id=request.external_id,
            picture_url=request.picture_url,
        )

        if request.is_pending:
            request.status = AccessRequestStatus.APPROVED.value
            request.reviewed_at = utcnow()
            await db.flush()
            logger.info("Access request %s approved; user %s", request.id, user.id)
        return user

    async def reject(self, db: AsyncSession, request_id: int) -> Optional[AccessRequest]:
        """
        Close a pending request without touching any user.

        Returns None when the request does not exist; rejecting a rejected
        request returns it unchanged.

        Raises:
            ValidationError: the request was already approved.
        """
        request = await self.get_request(db, request_id)
        if request is None:
            return None
        if request.status == AccessRequestStatus.APPROVED.value:
            raise ValidationError(
                message="This request was already approved and cannot be rejected.",
                context={"request_id": request_id},
            )
        if request.is_pending:
            request.status = AccessRequestStatus.REJECTED.value
            request.reviewed_at = utcnow()
            await db.flush()
            logger.info("Access request %s rejected", request.id)
        return request

    async def list_requests(
        self, db: AsyncSession, status: Optional[str] = None
    ) -> List[AccessRequest]:
        """Most recent first, bounded by ACCESS_REQUEST_PAGE_SIZE (300)."""
        wanted = parse_status(status)
        query = select(AccessRequest)
        if wanted is not None:
            query = query.where(AccessRequest.status == wanted.value)
        query = query.order_by(
            AccessRequest.requested_at.desc(), AccessRequest.id.desc()
        ).limit(settings.access_request_page_size)
        result = await db.execute(query)
        return list(result.scalars().all())


access_service = AccessService()
