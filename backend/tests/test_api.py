"""
Codemmunity Backend: API Endpoint Tests
=========================================

What:  End-to-end tests through the FastAPI app (HTTPX + ASGITransport)
       against the SQLite test database.

What we test:
    ✅ Post/comment lifecycle scenario, including cascade on delete
    ✅ Error translation: 400, 401, 403, 404, 503, 500
    ✅ Pagination headers, request IDs, health check
"""

import asyncio
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from codemmunity.exceptions import DatabaseError, DatabaseUnreachableError
from codemmunity.routes.deps import (
    ClientDisconnected,
    get_connection_manager,
    get_post_repository,
    run_until_disconnect,
)

AS_U1 = {"X-User-ID": "u1"}
AS_U2 = {"X-User-ID": "u2"}
AS_MOD = {"X-User-ID": "mod", "X-User-Role": "moderator"}


async def create_post(client, title="Hello", body="print('hello')", headers=AS_U1):
    response = await client.post("/api/posts", json={"title": title, "body": body}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def create_comment(client, body, post_id=None, parent_id=None, headers=AS_U2):
    payload = {"body": body}
    if post_id:
        payload["post_id"] = post_id
    if parent_id:
        payload["parent_id"] = parent_id
    response = await client.post("/api/comments", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestScenario:

    @pytest.mark.asyncio
    async def test_post_comment_delete(self, test_client):
        post = await create_post(test_client, title="Hello")
        comment = await create_comment(test_client, "nice!", post_id=post["id"])

        thread = await test_client.get(f"/api/posts/{post['id']}/comments")
        assert thread.status_code == 200
        assert [c["body"] for c in thread.json()["comments"]] == ["nice!"]

        deleted = await test_client.delete(f"/api/posts/{post['id']}", headers=AS_U1)
        assert deleted.status_code == 204

        listing = await test_client.get(f"/api/posts/{post['id']}/comments")
        assert listing.status_code == 404
        assert listing.json()["error"] == "not_found"

        lookup = await test_client.get(f"/api/comments/{comment['id']}")
        assert lookup.status_code == 404

    @pytest.mark.asyncio
    async def test_threaded_listing(self, test_client):
        post = await create_post(test_client)
        top = await create_comment(test_client, "top", post_id=post["id"])
        reply = await create_comment(test_client, "reply", parent_id=top["id"], headers=AS_U1)

        oldest = (await test_client.get(f"/api/posts/{post['id']}/comments")).json()

        assert oldest["count"] == 2
        assert oldest["ordering"] == "oldest"
        assert [(c["id"], c["depth"]) for c in oldest["comments"]] == [
            (top["id"], 0),
            (reply["id"], 1),
        ]
        assert oldest["comments"][1]["parent_id"] == top["id"]

    @pytest.mark.asyncio
    async def test_deleted_comment_shows_as_placeholder(self, test_client):
        post = await create_post(test_client)
        top = await create_comment(test_client, "top", post_id=post["id"])
        await create_comment(test_client, "reply", parent_id=top["id"], headers=AS_U1)

        response = await test_client.delete(f"/api/comments/{top['id']}", headers=AS_U2)
        assert response.status_code == 204

        comments = (await test_client.get(f"/api/posts/{post['id']}/comments")).json()["comments"]
        assert comments[0]["is_deleted"] is True
        assert comments[0]["body"] is None
        assert comments[1]["body"] == "reply"

    @pytest.mark.asyncio
    async def test_edit_and_like(self, test_client):
        post = await create_post(test_client)

        edited = await test_client.patch(
            f"/api/posts/{post['id']}", json={"body": "print('bye')"}, headers=AS_U1
        )
        liked = await test_client.patch(f"/api/posts/{post['id']}/likes?mode=increment")
        unliked = await test_client.patch(f"/api/posts/{post['id']}/likes?mode=decrement")
        clamped = await test_client.patch(f"/api/posts/{post['id']}/likes?mode=decrement")

        assert edited.status_code == 200
        assert edited.json()["body"] == "print('bye')"
        assert edited.json()["created_at"] == post["created_at"]
        assert liked.json()["likes"] == 1
        assert unliked.json()["likes"] == 0
        assert clamped.json()["likes"] == 0

    @pytest.mark.asyncio
    async def test_listing_sets_total_count_header(self, test_client):
        for i in range(3):
            await create_post(test_client, title=f"Post {i}")

        response = await test_client.get("/api/posts?page=1&page_size=2")

        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "3"
        body = response.json()
        assert len(body["posts"]) == 2
        assert body["has_more"] is True


class TestErrorMapping:

    @pytest.mark.asyncio
    async def test_missing_title_is_400(self, test_client):
        response = await test_client.post("/api/posts", json={"body": "code"}, headers=AS_U1)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert any(err["field"] == "title" for err in body["details"])

    @pytest.mark.asyncio
    async def test_oversized_comment_is_400(self, test_client):
        post = await create_post(test_client)

        response = await test_client.post(
            "/api/comments",
            json={"post_id": post["id"], "body": "x" * 4001},
            headers=AS_U2,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_comment_needs_exactly_one_parent(self, test_client):
        post = await create_post(test_client)

        response = await test_client.post(
            "/api/comments",
            json={"post_id": post["id"], "parent_id": post["id"], "body": "both"},
            headers=AS_U2,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_page_is_400(self, test_client):
        response = await test_client.get("/api/posts?page=0")

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "page"

    @pytest.mark.asyncio
    async def test_invalid_uuid_is_400(self, test_client):
        response = await test_client.get("/api/posts/not-a-uuid")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_actor_is_401(self, test_client):
        response = await test_client.post("/api/posts", json={"title": "t", "body": "b"})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_non_author_edit_is_403(self, test_client):
        post = await create_post(test_client)

        response = await test_client.patch(
            f"/api/posts/{post['id']}", json={"title": "mine now"}, headers=AS_U2
        )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_moderator_delete_is_allowed(self, test_client):
        post = await create_post(test_client)

        response = await test_client.delete(f"/api/posts/{post['id']}", headers=AS_MOD)

        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_unknown_post_is_404(self, test_client):
        response = await test_client.get(f"/api/posts/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["request_id"]

    @pytest.mark.asyncio
    async def test_database_unavailable_is_503(self, app, test_client):
        repo = MagicMock()
        repo.list_posts = AsyncMock(side_effect=DatabaseUnreachableError())
        app.dependency_overrides[get_post_repository] = lambda: repo

        response = await test_client.get("/api/posts")

        assert response.status_code == 503
        assert response.json()["details"]["reason"] == "unreachable"
        assert response.headers["Retry-After"]

    @pytest.mark.asyncio
    async def test_database_error_is_500_without_driver_details(self, app, test_client):
        repo = MagicMock()
        repo.get_post = AsyncMock(
            side_effect=DatabaseError(context={"statement": "SELECT secret FROM posts"})
        )
        app.dependency_overrides[get_post_repository] = lambda: repo

        response = await test_client.get(f"/api/posts/{uuid.uuid4()}")

        assert response.status_code == 500
        assert "secret" not in response.text

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, app):
        repo = MagicMock()
        repo.get_post = AsyncMock(side_effect=RuntimeError("boom"))
        app.dependency_overrides[get_post_repository] = lambda: repo

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(f"/api/posts/{uuid.uuid4()}")

        assert response.status_code == 500
        assert response.json()["error"] == "internal_server_error"
        assert "boom" not in response.text


class TestHealthAndHeaders:

    @pytest.mark.asyncio
    async def test_health_reports_connected(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["transport"] == "plain"

    @pytest.mark.asyncio
    async def test_health_reports_unavailable_database(self, app, test_client, db):
        broken = MagicMock()
        broken.config = db.config
        broken.ping = AsyncMock(side_effect=DatabaseUnreachableError())
        app.dependency_overrides[get_connection_manager] = lambda: broken

        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"


class TestRunUntilDisconnect:

    @staticmethod
    def fake_request(disconnect_after):
        calls = {"n": 0}

        async def is_disconnected():
            calls["n"] += 1
            return calls["n"] > disconnect_after

        return SimpleNamespace(
            is_disconnected=is_disconnected,
            method="POST",
            url=SimpleNamespace(path="/api/posts"),
        )

    @pytest.mark.asyncio
    async def test_returns_result_while_connected(self):
        async def operation():
            return 42

        assert await run_until_disconnect(self.fake_request(10**6), operation()) == 42

    @pytest.mark.asyncio
    async def test_propagates_operation_errors(self):
        async def operation():
            raise DatabaseUnreachableError()

        with pytest.raises(DatabaseUnreachableError):
            await run_until_disconnect(self.fake_request(10**6), operation())

    @pytest.mark.asyncio
    async def test_cancels_operation_on_disconnect(self):
        cancelled = asyncio.Event()

        async def operation():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(ClientDisconnected):
            await run_until_disconnect(self.fake_request(1), operation())

        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_cancels_the_write(self, post_repo):
        cancelled = asyncio.Event()

        async def slow_create():
            try:
                await asyncio.sleep(0.2)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return await post_repo.create_post("u1", "ghost", "code")

        handler = asyncio.ensure_future(
            run_until_disconnect(self.fake_request(10**6), slow_create())
        )
        await asyncio.sleep(0.05)
        handler.cancel()

        with pytest.raises(asyncio.CancelledError):
            await handler

        assert cancelled.is_set()
        await asyncio.sleep(0.3)
        assert (await post_repo.list_posts()).total_count == 0
