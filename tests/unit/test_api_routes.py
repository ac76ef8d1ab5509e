"""Integration tests for the FastAPI layer."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from builders import build_path, square_corners
from conquest.api.app import create_app
from conquest.api.runtime import ApiState
from conquest.config import Settings


def _make_app(engine):
    def factory() -> ApiState:
        settings = Settings(database_url="sqlite://", event_mode_cache_ttl_seconds=60.0)
        return ApiState(settings=settings, engine=engine)

    app = create_app(state_factory=factory)
    transport = ASGITransport(app=app)
    return app, transport


def _path_payload(corners, **kwargs) -> list[dict]:
    return [
        {"lat": p.lat, "lng": p.lng, "timestamp": p.timestamp, "speed": p.speed}
        for p in build_path(corners, **kwargs)
    ]


async def _conquer(client: AsyncClient, owner: str, corners, **extra):
    body = {"owner_id": owner, "activity_id": f"act-{owner}-{corners[0]}", "path": _path_payload(corners)}
    body.update(extra)
    return await client.post("/conquests", json=body)


@pytest.mark.asyncio
async def test_conquest_lifecycle_via_api(engine):
    app, transport = _make_app(engine)

    async with (
        app.router.lifespan_context(app),
        AsyncClient(transport=transport, base_url="http://test") as client,
    ):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": True, "event_mode": False}

        response = await _conquer(client, "alice", square_corners(0, 0, 10), name="Garden")
        assert response.status_code == 201
        first = response.json()
        alice_territory = first["new_territory"]
        assert alice_territory["owner_id"] == "alice"
        assert alice_territory["name"] == "Garden"
        assert alice_territory["area"] == pytest.approx(100.0, rel=1e-2)
        assert alice_territory["polygon"][0] == alice_territory["polygon"][-1]
        assert first["invasions"] == []
        assert first["total_conquered_area"] == pytest.approx(alice_territory["area"])

        response = await _conquer(
            client, "bob", square_corners(7, 0, 10), owner_username="Bob", activity_type="RUN"
        )
        assert response.status_code == 201
        second = response.json()
        (invasion,) = second["invasions"]
        assert invasion["invaded_territory_id"] == alice_territory["id"]
        assert invasion["invader_username"] == "Bob"
        assert invasion["territory_was_destroyed"] is False
        assert second["total_conquered_area"] == pytest.approx(30.0, rel=1e-2)
        assert second["modified_territories"][0]["area"] == pytest.approx(70.0, rel=1e-2)
        assert second["new_territory"]["version"] == 1
        assert second["modified_territories"][0]["version"] == 2

        response = await client.get(f"/territories/{alice_territory['id']}")
        assert response.status_code == 200
        clipped = response.json()
        assert clipped["version"] == 2
        assert [event["claimed_by"] for event in clipped["history"]] == ["alice", "bob"]

        response = await client.get("/territories", params={"owner_id": "bob"})
        assert [t["id"] for t in response.json()] == [second["new_territory"]["id"]]

        response = await client.get("/leaderboard")
        assert response.status_code == 200
        board = response.json()
        assert [(entry["rank"], entry["owner_id"]) for entry in board] == [(1, "bob"), (2, "alice")]

        response = await client.get("/users/alice/invasions/unseen")
        assert [i["id"] for i in response.json()] == [invasion["id"]]

        response = await client.post("/users/alice/invasions/seen", json={})
        assert response.json() == {"marked": 1}
        response = await client.get("/users/alice/invasions/unseen")
        assert response.json() == []


@pytest.mark.asyncio
async def test_rejections_map_to_http_errors(engine):
    app, transport = _make_app(engine)

    async with (
        app.router.lifespan_context(app),
        AsyncClient(transport=transport, base_url="http://test") as client,
    ):
        body = {"owner_id": "alice", "activity_id": "a1", "path": _path_payload(square_corners(0, 0, 10))[:1]}
        response = await client.post("/conquests", json=body)
        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "too_few_points"

        tiny = _path_payload(square_corners(0, 0, 3), steps_per_edge=2, step_ms=2000)
        response = await client.post("/conquests", json={"owner_id": "alice", "activity_id": "a2", "path": tiny})
        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "too_small"

        response = await _conquer(client, "alice", square_corners(0, 0, 10))
        assert response.status_code == 201
        response = await _conquer(client, "alice", square_corners(50, 0, 10))
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1

        response = await client.get("/territories/does-not-exist")
        assert response.status_code == 404

        response = await client.post("/conquests", json={"owner_id": "", "activity_id": "a", "path": []})
        assert response.status_code == 422

        response = await client.get("/territories")
        assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_event_mode_via_api(engine):
    app, transport = _make_app(engine)

    async with (
        app.router.lifespan_context(app),
        AsyncClient(transport=transport, base_url="http://test") as client,
    ):
        response = await client.get("/event-mode")
        assert response.status_code == 200
        assert response.json()["active"] is False

        response = await client.put("/event-mode", json={"enabled": True, "duration_minutes": 30})
        assert response.status_code == 200
        status_payload = response.json()
        assert status_payload["enabled"] is True
        assert status_payload["active"] is True
        assert 0 < status_payload["seconds_remaining"] <= 1800

        response = await client.get("/health")
        assert response.json()["event_mode"] is True

        await _conquer(client, "alice", square_corners(0, 0, 10))
        response = await _conquer(client, "bob", square_corners(7, 0, 10))
        assert response.status_code == 201
        overlapping = response.json()
        assert overlapping["invasions"] == []
        assert overlapping["total_conquered_area"] == pytest.approx(overlapping["new_territory"]["area"])

        response = await client.put("/event-mode", json={"enabled": False})
        assert response.json()["active"] is False
        assert response.json()["seconds_remaining"] is None

        response = await client.put("/event-mode", json={"enabled": True, "duration_minutes": 0})
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_named_events_via_api(engine):
    app, transport = _make_app(engine)

    async with (
        app.router.lifespan_context(app),
        AsyncClient(transport=transport, base_url="http://test") as client,
    ):
        response = await client.get("/events/current")
        assert response.status_code == 404
        response = await client.post("/events/current/end")
        assert response.status_code == 404

        response = await client.post("/events", json={"name": "City Sprint", "duration_minutes": 60})
        assert response.status_code == 201
        started = response.json()
        assert started["name"] == "City Sprint"
        assert started["duration_minutes"] == 60
        assert started["ended_at"] is None
        assert started["id"].startswith("evt_")

        response = await client.get("/events/current")
        assert response.json()["id"] == started["id"]
        response = await client.get("/event-mode")
        assert response.json()["active"] is True

        response = await client.post("/events/current/end")
        assert response.status_code == 200
        assert response.json()["ended_at"] is not None
        response = await client.get("/event-mode")
        assert response.json()["active"] is False

        response = await client.get("/events/past")
        assert [e["id"] for e in response.json()] == [started["id"]]

        response = await client.post("/events", json={"name": "   "})
        assert response.status_code == 422
