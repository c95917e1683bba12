import json
import pytest
from httpx import AsyncClient
from redis.exceptions import RedisError
from models import Bookmark, SessionHistory


@pytest.mark.asyncio
async def test_cached_page_is_served_without_rendering(client: AsyncClient, redis_mock):
    redis_mock.hget.return_value = json.dumps({"companions": [], "cached": True})

    response = await client.get("/pages/companions")
    assert response.status_code == 200
    assert response.json()["cached"] is True
    redis_mock.hset.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_miss_renders_and_stores_variant(client: AsyncClient, redis_mock, make_companion):
    companion = await make_companion(subject="maths")

    response = await client.get("/pages/companions", params={"subject": "maths"})
    assert response.status_code == 200
    data = response.json()
    assert data["filters"] == {"subject": "maths", "topic": ""}
    assert [c["id"] for c in data["companions"]] == [companion.id]

    key, variant, payload = redis_mock.hset.await_args.args
    assert key == "page:/companions"
    assert variant == "anonymous?subject=maths"
    assert json.loads(payload) == data
    redis_mock.expire.assert_awaited_once_with("page:/companions", 60)


@pytest.mark.asyncio
async def test_cards_carry_viewer_bookmark_flag(client: AsyncClient, auth_headers, make_companion, db_session):
    saved = await make_companion(name="Saved")
    await make_companion(name="Unsaved")
    db_session.add(Bookmark(companion_id=saved.id, user_id="user_1"))
    await db_session.commit()

    response = await client.get("/pages/companions", headers=auth_headers())
    flags = {c["name"]: c["bookmarked"] for c in response.json()["companions"]}
    assert flags == {"Saved": True, "Unsaved": False}

    response = await client.get("/pages/companions")
    assert not any(c["bookmarked"] for c in response.json()["companions"])


@pytest.mark.asyncio
async def test_home_shows_three_companions_and_recent_sessions(client: AsyncClient, make_companion, db_session):
    companions = [await make_companion(name=f"Companion {i}") for i in range(5)]
    db_session.add(SessionHistory(companion_id=companions[0].id, user_id="user_2"))
    await db_session.commit()

    response = await client.get("/pages/")
    data = response.json()
    assert len(data["companions"]) == 3
    assert [c["id"] for c in data["recent_sessions"]] == [companions[0].id]


@pytest.mark.asyncio
async def test_my_journey_requires_sign_in(client: AsyncClient):
    response = await client.get("/pages/my-journey")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_my_journey_stats(client: AsyncClient, auth_headers, make_companion, db_session):
    mine = await make_companion(author="user_1")
    await make_companion(author="user_1")
    db_session.add_all([
        SessionHistory(companion_id=mine.id, user_id="user_1"),
        SessionHistory(companion_id=mine.id, user_id="user_1"),
        Bookmark(companion_id=mine.id, user_id="user_1"),
    ])
    await db_session.commit()

    response = await client.get("/pages/my-journey", headers=auth_headers())
    assert response.status_code == 200
    data = response.json()
    assert data["stats"] == {"lessons_completed": 2, "companions_created": 2}
    assert [c["id"] for c in data["bookmarks"]] == [mine.id]


@pytest.mark.asyncio
async def test_builder_reports_permission(client: AsyncClient, auth_headers, make_companion):
    response = await client.get("/pages/companions/new", headers=auth_headers(plan="pro"))
    assert response.json() == {"can_create": True}

    response = await client.get("/pages/companions/new", headers=auth_headers())
    assert response.json() == {"can_create": False}


@pytest.mark.asyncio
async def test_lesson_page_requires_sign_in_and_existing_companion(client: AsyncClient, auth_headers, make_companion):
    companion = await make_companion()

    assert (await client.get(f"/pages/companions/{companion.id}")).status_code == 401

    response = await client.get(f"/pages/companions/{companion.id}", headers=auth_headers())
    assert response.json()["companion"]["id"] == companion.id
    assert response.json()["user"] == {"id": "user_1"}

    response = await client.get("/pages/companions/missing", headers=auth_headers())
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cache_outage_still_renders(client: AsyncClient, redis_mock, make_companion):
    redis_mock.hget.side_effect = RedisError("connection refused")
    redis_mock.hset.side_effect = RedisError("connection refused")
    await make_companion()

    response = await client.get("/pages/companions")
    assert response.status_code == 200
    assert len(response.json()["companions"]) == 1
