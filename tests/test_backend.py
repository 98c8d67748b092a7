import json

import httpx
import pytest

import crud
import schemas
from backend import DatabaseBackend, HttpBackend
from conftest import TestSessionLocal
from feed import FeedStatus, JobFeed
from main import app


def asgi_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://testserver")


# --- DatabaseBackend ---
@pytest.mark.asyncio
async def test_database_backend_round_trip(db_session, job_factory):
    job_factory("a", posted_hours_ago=1)
    job_factory("b", posted_hours_ago=2)
    backend = DatabaseBackend(session_factory=TestSessionLocal)

    listing = await backend.list_jobs(schemas.JobListFilters(limit=1, user_id="user-1"))
    assert [row.id for row in listing.rows] == ["a"]
    assert listing.has_more is True

    assert (await backend.save_job("user-1", "b")).ok is True
    detail = await backend.get_job_by_id("b", "user-1")
    assert detail.is_saved is True

    updated = await backend.update_job("b", {"priority": "High"})
    assert updated.row.priority == "High"

    assert (await backend.unsave_job("user-1", "b")).ok is True
    assert crud.get_saved_job_ids(db_session, "user-1").job_ids == []


@pytest.mark.asyncio
async def test_feed_over_database_backend(db_session, job_factory):
    for hours, job_id in enumerate(["a", "b", "c"], start=1):
        job_factory(job_id, posted_hours_ago=hours)
    backend = DatabaseBackend(session_factory=TestSessionLocal)
    feed = JobFeed(backend, user_id="user-1", page_size=2, debounce_seconds=0)

    await feed.refresh()
    await feed.on_sentinel_visible()
    assert [row.id for row in feed.state.rows] == ["a", "b", "c"]
    assert feed.state.status == FeedStatus.READY

    await feed.toggle_saved("c")
    assert crud.get_saved_job_ids(db_session, "user-1").job_ids == ["c"]


# --- HttpBackend against the app ---
@pytest.mark.asyncio
async def test_http_backend_against_app(override_get_db, job_factory):
    job_factory("a", posted_hours_ago=1, title="Python Developer")
    job_factory("b", posted_hours_ago=2, title="Rust Developer")

    async with asgi_client() as client:
        backend = HttpBackend(client)

        listing = await backend.list_jobs(schemas.JobListFilters(search_term="rust", limit=5))
        assert [row.id for row in listing.rows] == ["b"]
        assert listing.error is None

        assert (await backend.save_job("ignored", "a")).ok is True
        detail = await backend.get_job_by_id("a")
        assert detail.row.title == "Python Developer"
        assert detail.is_saved is True

        updated = await backend.update_job("a", {"status": "Interviewing", "notes": "Round 2"})
        assert updated.row.status == "Interviewing"
        assert updated.row.notes == "Round 2"

        assert (await backend.unsave_job("ignored", "a")).ok is True
        saved_only = await backend.list_jobs(schemas.JobListFilters(saved_only=True))
        assert saved_only.rows == []


@pytest.mark.asyncio
async def test_http_backend_missing_rows(override_get_db, db_session):
    async with asgi_client() as client:
        backend = HttpBackend(client)

        detail = await backend.get_job_by_id("missing")
        assert detail.row is None
        assert detail.error is None

        updated = await backend.update_job("missing", {"status": "Applied"})
        assert updated.error.code == "not_found"

        saved = await backend.save_job("ignored", "missing")
        assert saved.ok is False
        assert saved.error.code == "not_found"


# --- HttpBackend error mapping ---
@pytest.mark.asyncio
async def test_http_backend_sends_bearer_token_and_params():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"rows": [], "saved_job_ids": [], "has_more": False, "error": None})

    async with mock_client(handler) as client:
        backend = HttpBackend(client, token="tok")
        await backend.list_jobs(schemas.JobListFilters(search_term="go", limit=3, offset=6, saved_only=True))

    request = seen[0]
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.url.path == "/api/jobs"
    assert dict(request.url.params) == {"limit": "3", "offset": "6", "saved_only": "true", "q": "go"}


@pytest.mark.asyncio
async def test_http_backend_maps_error_responses():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            return httpx.Response(401, json={"detail": "Sign in to save jobs."})
        return httpx.Response(500, json={"detail": [{"msg": "structured"}]})

    async with mock_client(handler) as client:
        backend = HttpBackend(client)

        saved = await backend.save_job("user-1", "a")
        assert saved.error.code == "unauthenticated"
        assert saved.error.message == "Sign in to save jobs."

        listing = await backend.list_jobs(schemas.JobListFilters())
        assert listing.error.code == "http_error"
        assert listing.error.message == "Internal Server Error"


@pytest.mark.asyncio
async def test_http_backend_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        result = await HttpBackend(client).list_jobs(schemas.JobListFilters())

    assert result.rows == []
    assert result.error.code == "http_error"
    assert result.error.message == "connection refused"


@pytest.mark.asyncio
async def test_http_backend_update_sends_only_set_fields():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "a", "title": "T", "company": "C", "notes": None})

    async with mock_client(handler) as client:
        backend = HttpBackend(client)
        empty = await backend.update_job("a", {"title": "not editable"})
        result = await backend.update_job("a", {"notes": None})

    assert empty.row is None and empty.error is None
    assert bodies == [{"notes": None}]
    assert result.row.notes is None


@pytest.mark.asyncio
async def test_http_backend_handles_ids_with_slashes(override_get_db, job_factory):
    job_factory("greenhouse/123", title="Staff Engineer")

    async with asgi_client() as client:
        backend = HttpBackend(client)

        detail = await backend.get_job_by_id("greenhouse/123")
        assert detail.row.title == "Staff Engineer"

        updated = await backend.update_job("greenhouse/123", {"status": "Applied"})
        assert updated.error is None
        assert updated.row.status == "Applied"

        assert (await backend.save_job("ignored", "greenhouse/123")).ok is True
        assert (await backend.get_job_by_id("greenhouse/123")).is_saved is True
        assert (await backend.unsave_job("ignored", "greenhouse/123")).ok is True


@pytest.mark.asyncio
async def test_http_backend_quotes_job_ids():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.raw_path.decode())
        return httpx.Response(200, json={"row": None, "is_saved": False, "error": None})

    async with mock_client(handler) as client:
        backend = HttpBackend(client)
        await backend.get_job_by_id("greenhouse/123?ref=x#top")
        await backend.save_job("user-1", "a/b")

    assert paths == ["/api/jobs/greenhouse%2F123%3Fref%3Dx%23top", "/api/jobs/a%2Fb/save"]


@pytest.mark.asyncio
async def test_http_backend_unreadable_success_bodies():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            return httpx.Response(200, json={"unexpected": True})
        return httpx.Response(200, text="<html>proxy page</html>")

    async with mock_client(handler) as client:
        backend = HttpBackend(client)

        listing = await backend.list_jobs(schemas.JobListFilters())
        assert listing.rows == []
        assert listing.error.code == "http_error"

        detail = await backend.get_job_by_id("a")
        assert detail.row is None
        assert detail.error.code == "http_error"

        updated = await backend.update_job("a", {"status": "Applied"})
        assert updated.row is None
        assert updated.error.code == "http_error"


@pytest.mark.asyncio
async def test_feed_recovers_from_unreadable_page():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy page</html>")

    async with mock_client(handler) as client:
        feed = JobFeed(HttpBackend(client), page_size=2, debounce_seconds=0)
        state = await feed.refresh()

    assert state.status == FeedStatus.ERRORED
    assert state.error
