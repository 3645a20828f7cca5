"""
Scrapbook Backend — HTTP API Tests
===================================

Exercises the routes end-to-end through the ASGI app against the in-memory
test database: sign-in outcomes, member pages, scores and the admin console.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from scrapbook.config import settings
from scrapbook.middleware.rate_limit import RateLimitMiddleware
from scrapbook.security import admin_token, user_token

GATEWAY_HEADERS = {"X-Identity-Gateway-Key": "test-gateway-key"}


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth(admin_token())


async def create_member(session_factory, make_user, **fields):
    async with session_factory() as session:
        user = await make_user(session, **fields)
        await session.commit()
    return user


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestIdentitySignIn:
    @pytest.mark.asyncio
    async def test_missing_gateway_key(self, test_client):
        response = await test_client.post(
            "/api/auth/identity", json={"email": "a@iima.ac.in", "displayName": "A"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"

    @pytest.mark.asyncio
    async def test_unseen_email_pending_then_already_pending(self, test_client):
        payload = {"email": "new@iima.ac.in", "displayName": "New", "externalId": "g-1"}

        first = await test_client.post("/api/auth/identity", json=payload, headers=GATEWAY_HEADERS)
        second = await test_client.post("/api/auth/identity", json=payload, headers=GATEWAY_HEADERS)

        assert first.status_code == 202
        assert first.json()["reason"] == "submitted"
        assert second.status_code == 202
        assert second.json()["reason"] == "already_pending"

    @pytest.mark.asyncio
    async def test_foreign_domain_forbidden(self, test_client):
        response = await test_client.post(
            "/api/auth/identity",
            json={"email": "x@gmail.com", "displayName": "X"},
            headers=GATEWAY_HEADERS,
        )
        assert response.status_code == 403
        assert response.json()["error"] == "permission_denied"

    @pytest.mark.asyncio
    async def test_malformed_email_is_400(self, test_client):
        response = await test_client.post(
            "/api/auth/identity", json={"email": "nope"}, headers=GATEWAY_HEADERS
        )
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "email"

    @pytest.mark.asyncio
    async def test_existing_member_gets_token(self, test_client, session_factory, make_user):
        user = await create_member(session_factory, make_user, email="old@iima.ac.in")

        response = await test_client.post(
            "/api/auth/identity",
            json={"email": "OLD@iima.ac.in", "displayName": "Old Timer"},
            headers=GATEWAY_HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["id"] == user.id
        assert body["user"]["display_name"] == "Old Timer"

        me = await test_client.get("/api/me", headers=auth(body["access_token"]))
        assert me.status_code == 200
        assert me.json()["profile"]["email"] == "old@iima.ac.in"

    @pytest.mark.asyncio
    async def test_dev_login_runs_same_workflow(self, test_client):
        response = await test_client.post(
            "/api/auth/dev", json={"email": "dev@iima.ac.in", "display_name": "Dev"}
        )
        assert response.status_code == 202
        assert response.json()["reason"] == "submitted"


class TestAdminFlow:
    @pytest.mark.asyncio
    async def test_admin_login(self, test_client):
        bad = await test_client.post(
            "/api/auth/admin", json={"login_id": "admin", "login_pass": "nope"}
        )
        good = await test_client.post(
            "/api/auth/admin", json={"login_id": "admin", "login_pass": "admin-pass"}
        )
        assert bad.status_code == 401
        assert good.status_code == 200
        assert good.json()["user"] is None

    @pytest.mark.asyncio
    async def test_approve_then_sign_in(self, test_client, admin_headers):
        payload = {"email": "a@iima.ac.in", "displayName": "A"}
        await test_client.post("/api/auth/identity", json=payload, headers=GATEWAY_HEADERS)

        listing = await test_client.get("/api/admin/requests", headers=admin_headers)
        assert listing.status_code == 200
        requests = listing.json()["requests"]
        assert [r["email"] for r in requests] == ["a@iima.ac.in"]
        request_id = requests[0]["id"]

        detail = await test_client.get(f"/api/admin/requests/{request_id}", headers=admin_headers)
        assert detail.json()["existing_user"] is None

        approved = await test_client.post(
            f"/api/admin/requests/{request_id}/approve", headers=admin_headers
        )
        assert approved.status_code == 200
        assert approved.json()["user"]["email"] == "a@iima.ac.in"

        signed_in = await test_client.post(
            "/api/auth/identity", json=payload, headers=GATEWAY_HEADERS
        )
        assert signed_in.status_code == 200

        token = signed_in.json()["access_token"]
        page = await test_client.get(
            f"/api/pages/{signed_in.json()['user']['share_code']}", headers=auth(token)
        )
        assert page.status_code == 200
        assert [e["text_content"] for e in page.json()["entries"]] == ["Siuuuu"]

    @pytest.mark.asyncio
    async def test_reject_and_unknown_ids(self, test_client, admin_headers):
        await test_client.post(
            "/api/auth/identity",
            json={"email": "r@iima.ac.in", "displayName": "R"},
            headers=GATEWAY_HEADERS,
        )
        request_id = (
            await test_client.get("/api/admin/requests", headers=admin_headers)
        ).json()["requests"][0]["id"]

        rejected = await test_client.post(
            f"/api/admin/requests/{request_id}/reject", headers=admin_headers
        )
        assert rejected.json()["status"] == "rejected"

        conflict = await test_client.post(
            f"/api/admin/requests/{request_id}/approve", headers=admin_headers
        )
        assert conflict.status_code == 400

        missing = await test_client.post("/api/admin/requests/999/approve", headers=admin_headers)
        assert missing.status_code == 404

        bad_status = await test_client.get(
            "/api/admin/requests", params={"status": "archived"}, headers=admin_headers
        )
        assert bad_status.status_code == 400

    @pytest.mark.asyncio
    async def test_allowlist_crud(self, test_client, admin_headers):
        created = await test_client.post(
            "/api/admin/allowed-emails", json={"email": "Guest@IIMA.ac.in"}, headers=admin_headers
        )
        assert created.status_code == 201
        entry_id = created.json()["id"]

        listing = await test_client.get("/api/admin/allowed-emails", headers=admin_headers)
        assert [e["email"] for e in listing.json()] == ["guest@iima.ac.in"]

        foreign = await test_client.post(
            "/api/admin/allowed-emails", json={"email": "g@gmail.com"}, headers=admin_headers
        )
        assert foreign.status_code == 400

        # Allowlisted emails skip the queue
        signed_in = await test_client.post(
            "/api/auth/identity",
            json={"email": "guest@iima.ac.in", "displayName": "Guest"},
            headers=GATEWAY_HEADERS,
        )
        assert signed_in.status_code == 200

        removed = await test_client.delete(
            f"/api/admin/allowed-emails/{entry_id}", headers=admin_headers
        )
        assert removed.status_code == 200
        again = await test_client.delete(
            f"/api/admin/allowed-emails/{entry_id}", headers=admin_headers
        )
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_users_and_metrics(self, test_client, admin_headers, session_factory, make_user):
        user = await create_member(session_factory, make_user, display_name="Target")

        users = await test_client.get("/api/admin/users", params={"q": "targ"}, headers=admin_headers)
        assert [u["id"] for u in users.json()] == [user.id]

        metrics = await test_client.get("/api/admin/metrics", headers=admin_headers)
        assert metrics.status_code == 200
        assert metrics.json()["total_users"] == 1

        deleted = await test_client.delete(f"/api/admin/users/{user.id}", headers=admin_headers)
        assert deleted.status_code == 200
        missing = await test_client.delete(f"/api/admin/users/{user.id}", headers=admin_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_admin_routes_need_admin(self, test_client, session_factory, make_user):
        user = await create_member(session_factory, make_user)

        anonymous = await test_client.get("/api/admin/requests")
        member = await test_client.get("/api/admin/requests", headers=auth(user_token(user)))

        assert anonymous.status_code == 401
        assert member.status_code == 403


class TestMemberRoutes:
    @pytest.mark.asyncio
    async def test_pages_and_entries(self, test_client, session_factory, make_user):
        me = await create_member(session_factory, make_user, display_name="Me")
        friend = await create_member(session_factory, make_user, display_name="Friend")
        headers = auth(user_token(me))

        people = await test_client.get("/api/people", headers=headers)
        assert [p["id"] for p in people.json()["people"]] == [friend.id]

        posted = await test_client.post(
            f"/api/pages/{friend.share_code}/entries",
            json={"text_content": "Great knowing you"},
            headers=headers,
        )
        assert posted.status_code == 201
        assert posted.json()["author_name"] == "Me"

        page = await test_client.get(f"/api/pages/{friend.share_code}", headers=headers)
        assert page.json()["entries"][0]["text_content"] == "Great knowing you"

        missing = await test_client.get("/api/pages/nope", headers=headers)
        assert missing.status_code == 404

        empty = await test_client.post(
            f"/api/pages/{friend.share_code}/entries", json={"text_content": ""}, headers=headers
        )
        assert empty.status_code == 422

    @pytest.mark.asyncio
    async def test_admin_can_view_but_not_post(self, test_client, session_factory, make_user):
        owner = await create_member(session_factory, make_user)
        headers = auth(admin_token())

        view = await test_client.get(f"/api/pages/{owner.share_code}", headers=headers)
        post = await test_client.post(
            f"/api/pages/{owner.share_code}/entries", json={"text_content": "hi"}, headers=headers
        )

        assert view.status_code == 200
        assert post.status_code == 403

    @pytest.mark.asyncio
    async def test_profile_update(self, test_client, session_factory, make_user):
        me = await create_member(session_factory, make_user, display_name="Real")
        headers = auth(user_token(me))

        response = await test_client.patch(
            "/api/me", json={"alias": " Nick ", "bio": "Hello"}, headers=headers
        )

        assert response.status_code == 200
        profile = response.json()["profile"]
        assert profile["alias"] == "Nick"
        assert profile["name"] == "Nick"
        assert profile["bio"] == "Hello"

    @pytest.mark.asyncio
    async def test_alias_only_patch_keeps_bio(self, test_client, session_factory, make_user):
        me = await create_member(session_factory, make_user, display_name="Real", bio="My bio")
        headers = auth(user_token(me))

        renamed = await test_client.patch("/api/me", json={"alias": "Nick"}, headers=headers)
        assert renamed.json()["profile"]["alias"] == "Nick"
        assert renamed.json()["profile"]["bio"] == "My bio"

        cleared = await test_client.patch("/api/me", json={"bio": ""}, headers=headers)
        assert cleared.json()["profile"]["alias"] == "Nick"
        assert cleared.json()["profile"]["bio"] is None

    @pytest.mark.asyncio
    async def test_admin_has_no_game_score(self, test_client, session_factory, make_user):
        player = await create_member(session_factory, make_user)
        await test_client.post(
            "/api/scores", json={"score": 30}, headers=auth(user_token(player))
        )
        headers = auth(admin_token())

        submitted = await test_client.post("/api/scores", json={"score": 50}, headers=headers)
        board = await test_client.get("/api/leaderboard", headers=headers)

        assert submitted.status_code == 403
        assert board.status_code == 200
        assert board.json()["my_best"] == 0
        assert [row["best_score"] for row in board.json()["leaderboard"]] == [30]

    @pytest.mark.asyncio
    async def test_community_stats(self, test_client, session_factory, make_user):
        me = await create_member(session_factory, make_user, display_name="Me")
        friend = await create_member(session_factory, make_user, display_name="Friend")
        headers = auth(user_token(me))
        await test_client.post(
            f"/api/pages/{friend.share_code}/entries",
            json={"text_content": "Hello"},
            headers=headers,
        )

        stats = await test_client.get("/api/stats", headers=headers)
        as_admin = await test_client.get("/api/stats", headers=auth(admin_token()))
        anonymous = await test_client.get("/api/stats")

        assert stats.status_code == 200
        body = stats.json()
        assert body["total_posts"] == 1
        assert body["text_posts"] == 1
        assert body["top_pages"][0] == {"name": "Friend", "count": 1}
        assert as_admin.status_code == 200
        assert anonymous.status_code == 401

    @pytest.mark.asyncio
    async def test_scores_and_leaderboard(self, test_client, session_factory, make_user):
        me = await create_member(session_factory, make_user, display_name="Player")
        headers = auth(user_token(me))

        assert (await test_client.post("/api/scores", json={"score": 120}, headers=headers)).json() == {
            "best_score": 120
        }
        lower = await test_client.post("/api/scores", json={"score": 80}, headers=headers)
        assert lower.json()["best_score"] == 120

        invalid = await test_client.post("/api/scores", json={"score": -5}, headers=headers)
        assert invalid.status_code == 400

        board = await test_client.get("/api/leaderboard", params={"limit": 5}, headers=headers)
        body = board.json()
        assert body["my_best"] == 120
        assert body["leaderboard"][0]["name"] == "Player"
        assert body["leaderboard"][0]["rank"] == 1

    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, test_client):
        assert (await test_client.get("/api/me")).status_code == 401
        assert (await test_client.get("/api/leaderboard")).status_code == 401
        bad_token = await test_client.get("/api/me", headers=auth("not-a-jwt"))
        assert bad_token.status_code == 401


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_limited_paths_get_429(self, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_requests", 2)
        monkeypatch.setattr(settings, "rate_limit_window", 60)

        app = FastAPI()
        app.add_middleware(RateLimitMiddleware)

        @app.post("/api/scores")
        async def scores():
            return {"ok": True}

        @app.get("/api/people")
        async def people():
            return {"ok": True}

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [(await client.post("/api/scores")).status_code for _ in range(3)]
            unlimited = [(await client.get("/api/people")).status_code for _ in range(3)]
            blocked = await client.post("/api/scores")

        assert statuses == [200, 200, 429]
        assert unlimited == [200, 200, 200]
        assert int(blocked.headers["Retry-After"]) >= 1

        body = blocked.json()
        assert body["error"] == "rate_limit_exceeded"
        assert body["details"]["retry_after"] == int(blocked.headers["Retry-After"])

    @pytest.mark.asyncio
    async def test_gateway_sign_ins_share_no_bucket(self, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_requests", 2)
        monkeypatch.setattr(settings, "rate_limit_window", 60)

        app = FastAPI()
        app.add_middleware(RateLimitMiddleware)

        @app.post("/api/auth/identity")
        async def identity():
            return {"ok": True}

        @app.post("/api/auth/dev")
        async def dev():
            return {"ok": True}

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            gateway = []
            for n in range(5):
                response = await client.post(
                    "/api/auth/identity", json={"email": f"m{n}@iima.ac.in"}
                )
                gateway.append(response.status_code)
            dev_logins = [(await client.post("/api/auth/dev")).status_code for _ in range(3)]

        assert gateway == [200] * 5
        assert dev_logins == [200, 200, 429]
