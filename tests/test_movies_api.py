import httpx
import pytest

from conftest import API_HEADERS, make_movie
from moviequeue.config import Settings
from moviequeue.main import create_app
from moviequeue.redis_helper import AsyncInMemoryRedis
from moviequeue.services.omdb import OMDbClient
from test_omdb import OMDB_INCEPTION


async def _create(client, **overrides):
    res = await client.post("/api/movies", json=make_movie(**overrides), headers=API_HEADERS)
    assert res.status_code == 201
    return res.json()["data"]


@pytest.mark.asyncio
async def test_health_and_ready(client):
    assert (await client.get("/healthz")).json() == {"status": "ok"}
    assert (await client.get("/readyz")).json() == {"ready": True}


@pytest.mark.asyncio
async def test_writes_require_api_key(client):
    res = await client.post("/api/movies", json=make_movie())
    assert res.status_code == 401
    res = await client.post("/api/movies", json=make_movie(), headers={"X-API-Key": "wrong"})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_api_key_comes_from_app_settings():
    settings = Settings(testing=True, api_key="secret-key", log_json=False)
    app = create_app(settings, redis_client=AsyncInMemoryRedis())
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            res = await client.post("/api/movies", json=make_movie(), headers={"X-API-Key": "secret-key"})
            assert res.status_code == 201
            res = await client.post("/api/movies", json=make_movie(), headers=API_HEADERS)
            assert res.status_code == 403


@pytest.mark.asyncio
async def test_sync_create_returns_record(client, app):
    res = await client.post("/api/movies", json=make_movie(), headers=API_HEADERS)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["data"]["id"]
    assert body["data"]["formatted_duration"] == "2h 28m"
    assert await app.state.movie_service.store.count() == 1


@pytest.mark.asyncio
async def test_sync_create_invalid_body(client):
    res = await client.post("/api/movies", json={"title": "Only a title"}, headers=API_HEADERS)
    assert res.status_code == 400
    assert res.json()["success"] is False


@pytest.mark.asyncio
async def test_async_create_is_accepted_then_applied(client, app, app_dispatcher):
    store = app.state.movie_service.store
    res = await client.post(
        "/api/movies", params={"useQueue": "true"}, json=make_movie(), headers=API_HEADERS
    )
    assert res.status_code == 202
    body = res.json()
    assert body["accepted"] is True
    assert body["jobId"]
    assert "data" not in body
    assert await store.count() == 0

    await app_dispatcher.drain()
    movies = await store.find_many()
    assert [m["title"] for m in movies] == ["Inception"]


@pytest.mark.asyncio
async def test_async_create_with_invalid_body_is_still_accepted(client, app, app_dispatcher):
    res = await client.post(
        "/api/movies", params={"useQueue": "true"}, json={"title": "x"}, headers=API_HEADERS
    )
    assert res.status_code == 202

    await app_dispatcher.drain()
    failed = await client.get("/jobs/failed", headers=API_HEADERS)
    jobs = failed.json()["jobs"]
    assert [j["job_id"] for j in jobs] == [res.json()["jobId"]]
    assert jobs[0]["attempts"] == 1


@pytest.mark.asyncio
async def test_update_sync_and_async(client, app_dispatcher):
    movie = await _create(client)

    res = await client.put(f"/api/movies/{movie['id']}", json={"rating": 9.5}, headers=API_HEADERS)
    assert res.status_code == 200
    assert res.json()["data"]["rating"] == 9.5

    res = await client.put(
        f"/api/movies/{movie['id']}",
        params={"useQueue": "true"},
        json={"title": "Inception (Director's Cut)"},
        headers=API_HEADERS,
    )
    assert res.status_code == 202
    assert (await client.get(f"/api/movies/{movie['id']}")).json()["data"]["title"] == "Inception"

    await app_dispatcher.drain()
    res = await client.get(f"/api/movies/{movie['id']}")
    assert res.json()["data"]["title"] == "Inception (Director's Cut)"


@pytest.mark.asyncio
async def test_update_missing_movie_is_404_on_both_paths(client):
    for params in ({}, {"useQueue": "true"}):
        res = await client.put("/api/movies/X", params=params, json={"title": "New"}, headers=API_HEADERS)
        assert res.status_code == 404
        assert res.json() == {"success": False, "message": "Movie not found with id of X"}


@pytest.mark.asyncio
async def test_bulk_create_is_queued(client, app, app_dispatcher):
    movies = [make_movie(title=f"Movie {i}") for i in range(3)]
    res = await client.post("/api/movies/bulk", json={"movies": movies}, headers=API_HEADERS)
    assert res.status_code == 202

    await app_dispatcher.drain()
    assert await app.state.movie_service.store.count() == 3


@pytest.mark.asyncio
async def test_list_sorted_search_and_stats(client):
    await _create(client, title="Alpha", rating=7.0, genre=["Drama"])
    await _create(client, title="Beta", rating=9.0, genre=["Action"])

    res = await client.get("/api/movies", params={"genre": "Action,Comedy"})
    body = res.json()
    assert body["count"] == 1
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}

    res = await client.get("/api/movies/sorted", params={"sortBy": "bogus", "order": "asc"})
    body = res.json()
    assert body["sortBy"] == "rating"
    assert [m["title"] for m in body["data"]] == ["Alpha", "Beta"]

    res = await client.get("/api/movies/search", params={"q": "bet"})
    assert [m["title"] for m in res.json()["data"]] == ["Beta"]

    res = await client.get("/api/movies/search", params={"q": "b"})
    assert res.status_code == 400

    stats = (await client.get("/api/movies/stats")).json()["data"]
    assert stats["total_movies"] == 2
    assert stats["max_rating"] == 9.0


@pytest.mark.asyncio
async def test_delete_is_soft(client):
    movie = await _create(client)
    res = await client.delete(f"/api/movies/{movie['id']}", headers=API_HEADERS)
    assert res.status_code == 200
    assert (await client.get(f"/api/movies/{movie['id']}")).status_code == 404
    assert (await client.delete(f"/api/movies/{movie['id']}", headers=API_HEADERS)).status_code == 404


@pytest.mark.asyncio
async def test_identical_sync_creates_are_separate_movies(client, app):
    first = await _create(client)
    second = await _create(client)
    assert first["id"] != second["id"]
    assert await app.state.movie_service.store.count() == 2


@pytest.mark.asyncio
async def test_recreate_after_delete(client, app):
    headers = {**API_HEADERS, "Idempotency-Key": "req-42"}
    res = await client.post("/api/movies", json=make_movie(), headers=headers)
    first = res.json()["data"]
    assert (await client.post("/api/movies", json=make_movie(), headers=headers)).json()["data"]["id"] == first["id"]
    await client.delete(f"/api/movies/{first['id']}", headers=API_HEADERS)

    res = await client.post("/api/movies", json=make_movie(), headers=headers)
    assert res.status_code == 201
    movie = res.json()["data"]
    assert movie["id"] != first["id"]
    assert movie["is_active"] is True
    listed = (await client.get("/api/movies")).json()["data"]
    assert [m["id"] for m in listed] == [movie["id"]]


@pytest.mark.asyncio
async def test_failed_job_can_be_retried(client, app, app_dispatcher):
    res = await client.post(
        "/api/movies", params={"useQueue": "true"}, json={"title": "x"}, headers=API_HEADERS
    )
    job_id = res.json()["jobId"]
    await app_dispatcher.drain()

    res = await client.post(f"/jobs/failed/{job_id}/retry", headers=API_HEADERS)
    assert res.status_code == 200
    assert (await client.get("/jobs/counts")).json()["ready"] == 1

    res = await client.post("/jobs/failed/999/retry", headers=API_HEADERS)
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_import_from_omdb(settings, redis_client):
    omdb = OMDbClient(
        "test-key", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=OMDB_INCEPTION))
    )
    app = create_app(settings, redis_client=redis_client, omdb_client=omdb)
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            res = await client.post("/api/movies/import", json={"imdbID": "tt1375666"}, headers=API_HEADERS)
            assert res.status_code == 201
            assert res.json()["data"]["imdb_id"] == "tt1375666"

            res = await client.post("/api/movies/import", json={"imdbID": "tt1375666"}, headers=API_HEADERS)
            assert res.status_code == 409

            res = await client.post("/api/movies/import", json={}, headers=API_HEADERS)
            assert res.status_code == 400
