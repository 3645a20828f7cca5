"""
Scrapbook Backend — Access Workflow Tests
==========================================

What we test:
    ✅ Unseen email queues exactly one pending request; repeats reuse it
    ✅ Approval provisions exactly one user per email, with a welcome entry
    ✅ Rejection does not block a fresh request later
    ✅ Existing users and allowlisted emails sign in without review
    ✅ Domain policy and status filtering
    ✅ End-to-end scenario including the score ledger
"""

import pytest
from sqlalchemy import func, select

from scrapbook.exceptions import PermissionDeniedError, ValidationError
from scrapbook.models import AccessRequest, AccessRequestStatus, Entry, User
from scrapbook.schemas.identity import IdentityAssertion
from scrapbook.services.access_service import AccessService, PendingReason, parse_status
from scrapbook.services.allowlist_service import AllowlistService
from scrapbook.services.identity_service import IdentityService
from scrapbook.services.policy import EmailDomainPolicy
from scrapbook.services.score_service import ScoreService


def make_service(domains=("iima.ac.in",)) -> AccessService:
    policy = EmailDomainPolicy(domains)
    return AccessService(
        identity=IdentityService(),
        allowlist=AllowlistService(policy=policy),
        policy=policy,
    )


async def count_requests(db, email, status=None):
    query = select(func.count(AccessRequest.id)).where(AccessRequest.email == email)
    if status is not None:
        query = query.where(AccessRequest.status == status.value)
    return (await db.execute(query)).scalar_one()


async def count_users(db, email):
    return (
        await db.execute(select(func.count(User.id)).where(User.email == email))
    ).scalar_one()


class TestSignIn:
    def setup_method(self):
        self.service = make_service()

    @pytest.mark.asyncio
    async def test_unseen_email_is_queued(self, db_session):
        result = await self.service.sign_in(
            db_session, IdentityAssertion(email="new@iima.ac.in", display_name="New")
        )

        assert not result.signed_in
        assert result.pending_reason is PendingReason.SUBMITTED
        assert result.request.status == AccessRequestStatus.PENDING.value
        assert await count_requests(db_session, "new@iima.ac.in") == 1
        assert await count_users(db_session, "new@iima.ac.in") == 0

    @pytest.mark.asyncio
    async def test_repeat_before_review_creates_no_second_request(self, db_session):
        assertion = IdentityAssertion(email="Again@IIMA.ac.in", display_name="Again")

        first = await self.service.sign_in(db_session, assertion)
        second = await self.service.sign_in(db_session, assertion)

        assert first.pending_reason is PendingReason.SUBMITTED
        assert second.pending_reason is PendingReason.ALREADY_PENDING
        assert second.request.id == first.request.id
        assert await count_requests(db_session, "again@iima.ac.in") == 1

    @pytest.mark.asyncio
    async def test_existing_user_signs_in_without_allowlist(self, db_session, make_user):
        user = await make_user(db_session, email="member@iima.ac.in")

        result = await self.service.sign_in(
            db_session, IdentityAssertion(email="member@iima.ac.in", display_name="M")
        )

        assert result.signed_in
        assert result.user.id == user.id
        assert await count_requests(db_session, "member@iima.ac.in") == 0

    @pytest.mark.asyncio
    async def test_allowlisted_email_self_provisions(self, db_session):
        await self.service.allowlist.add(db_session, "vip@iima.ac.in")

        result = await self.service.sign_in(
            db_session, IdentityAssertion(email="vip@iima.ac.in", display_name="VIP")
        )

        assert result.signed_in
        assert result.user.email == "vip@iima.ac.in"
        assert await count_requests(db_session, "vip@iima.ac.in") == 0

    @pytest.mark.asyncio
    async def test_foreign_domain_is_denied(self, db_session):
        with pytest.raises(PermissionDeniedError):
            await self.service.sign_in(
                db_session, IdentityAssertion(email="someone@gmail.com")
            )
        assert await count_requests(db_session, "someone@gmail.com") == 0

    @pytest.mark.asyncio
    async def test_malformed_email_is_invalid(self, db_session):
        with pytest.raises(ValidationError):
            await self.service.sign_in(db_session, IdentityAssertion(email="not-an-email"))

    @pytest.mark.asyncio
    async def test_empty_policy_permits_any_domain(self, db_session):
        service = make_service(domains=())
        result = await service.sign_in(db_session, IdentityAssertion(email="x@example.org"))
        assert result.pending_reason is PendingReason.SUBMITTED


class TestReview:
    def setup_method(self):
        self.service = make_service()

    async def _queue(self, db, email="a@iima.ac.in", name="A"):
        result = await self.service.sign_in(
            db, IdentityAssertion(email=email, display_name=name, external_id=None)
        )
        return result.request

    @pytest.mark.asyncio
    async def test_approve_provisions_user_and_marks_request(self, db_session):
        request = await self._queue(db_session, email=" Mixed@IIMA.ac.in ")

        user = await self.service.approve(db_session, request.id)

        assert user.email == "mixed@iima.ac.in"
        assert request.status == AccessRequestStatus.APPROVED.value
        assert request.reviewed_at is not None

    @pytest.mark.asyncio
    async def test_repeated_approvals_keep_one_user(self, db_session):
        request = await self._queue(db_session, email="twice@iima.ac.in")
        first = await self.service.approve(db_session, request.id)
        again = await self.service.approve(db_session, request.id)

        # A second request for the same email, approved independently
        later = AccessRequest(
            email="twice@iima.ac.in",
            display_name="Twice",
            status=AccessRequestStatus.PENDING.value,
        )
        db_session.add(later)
        await db_session.flush()
        third = await self.service.approve(db_session, later.id)

        assert first.id == again.id == third.id
        assert await count_users(db_session, "twice@iima.ac.in") == 1

    @pytest.mark.asyncio
    async def test_approve_missing_request_returns_none(self, db_session):
        assert await self.service.approve(db_session, 9999) is None

    @pytest.mark.asyncio
    async def test_reject_missing_request_returns_none(self, db_session):
        assert await self.service.reject(db_session, 9999) is None

    @pytest.mark.asyncio
    async def test_reject_then_sign_in_queues_fresh_request(self, db_session):
        request = await self._queue(db_session, email="retry@iima.ac.in")

        rejected = await self.service.reject(db_session, request.id)
        assert rejected.status == AccessRequestStatus.REJECTED.value
        assert await count_users(db_session, "retry@iima.ac.in") == 0

        result = await self.service.sign_in(
            db_session, IdentityAssertion(email="retry@iima.ac.in", display_name="R")
        )

        assert result.pending_reason is PendingReason.SUBMITTED
        assert result.request.id != request.id
        assert await count_requests(db_session, "retry@iima.ac.in") == 2
        assert await count_requests(
            db_session, "retry@iima.ac.in", AccessRequestStatus.PENDING
        ) == 1

    @pytest.mark.asyncio
    async def test_status_never_reverses(self, db_session):
        approved = await self._queue(db_session, email="yes@iima.ac.in")
        await self.service.approve(db_session, approved.id)
        with pytest.raises(ValidationError):
            await self.service.reject(db_session, approved.id)

        rejected = await self._queue(db_session, email="no@iima.ac.in")
        await self.service.reject(db_session, rejected.id)
        with pytest.raises(ValidationError):
            await self.service.approve(db_session, rejected.id)
        assert rejected.status == AccessRequestStatus.REJECTED.value

    @pytest.mark.asyncio
    async def test_request_detail_includes_existing_user(self, db_session):
        request = await self._queue(db_session, email="detail@iima.ac.in")
        _, existing = await self.service.get_request_detail(db_session, request.id)
        assert existing is None

        user = await self.service.approve(db_session, request.id)
        _, existing = await self.service.get_request_detail(db_session, request.id)
        assert existing.id == user.id


class TestListRequests:
    @pytest.mark.asyncio
    async def test_filter_and_order(self, db_session):
        service = make_service()
        for email in ("one@iima.ac.in", "two@iima.ac.in", "three@iima.ac.in"):
            await service.sign_in(db_session, IdentityAssertion(email=email))
        pending = await service.list_requests(db_session, "pending")
        await service.reject(db_session, pending[-1].id)

        assert len(await service.list_requests(db_session, "pending")) == 2
        assert len(await service.list_requests(db_session, "rejected")) == 1
        everything = await service.list_requests(db_session, "all")
        assert len(everything) == 3
        ids = [r.id for r in everything]
        assert ids == sorted(ids, reverse=True)

    def test_parse_status(self):
        assert parse_status(None) is None
        assert parse_status("ALL") is None
        assert parse_status(" Pending ") is AccessRequestStatus.PENDING
        with pytest.raises(ValidationError):
            parse_status("archived")


class TestScenario:
    @pytest.mark.asyncio
    async def test_request_approve_and_play(self, db_session):
        service = make_service()
        scores = ScoreService()

        result = await service.sign_in(
            db_session, IdentityAssertion.model_validate({"email": "a@iima.ac.in", "displayName": "A"})
        )
        assert result.pending_reason is PendingReason.SUBMITTED
        assert await count_requests(db_session, "a@iima.ac.in", AccessRequestStatus.PENDING) == 1

        user = await service.approve(db_session, result.request.id)
        assert user.email == "a@iima.ac.in"
        assert len(user.share_code) == 36
        welcome = (
            await db_session.execute(
                select(func.count(Entry.id)).where(Entry.target_user_id == user.id)
            )
        ).scalar_one()
        assert welcome == 1

        with pytest.raises(ValidationError):
            await scores.submit(db_session, user.id, -5)
        assert await scores.submit(db_session, user.id, 120) == 120
        assert await scores.submit(db_session, user.id, 80) == 120

        signed_in = await service.sign_in(
            db_session, IdentityAssertion(email="a@iima.ac.in", display_name="A")
        )
        assert signed_in.user.id == user.id
