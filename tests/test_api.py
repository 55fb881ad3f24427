"""
HTTP API tests.

Runs the FastAPI app in-process against the per-test SQLite database.
"""
from datetime import datetime, timezone

import httpx
import pytest

from clanwins.database import get_db
from clanwins.main import app
from clanwins.models.win_record import WinGameMode
from clanwins.services.stats_ledger import StatsLedger


@pytest.fixture
async def client(session_factory, stats_api):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.stats_api = stats_api
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    del app.state.stats_api


@pytest.mark.asyncio
async def test_health_reports_database(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "connected"}


@pytest.mark.asyncio
async def test_register_and_list_players(client):
    response = await client.put(
        "/api/communities/guild-1/players/user-1", json={"channel_id": "chan-1", "player_id": "p-1"}
    )
    assert response.status_code == 200

    await client.put("/api/communities/guild-1/players/user-1", json={"channel_id": "chan-1", "player_id": "p-2"})
    players = (await client.get("/api/communities/guild-1/players")).json()
    assert [p["player_id"] for p in players] == ["p-2"]

    assert (await client.delete("/api/communities/guild-1/players/user-1")).status_code == 200
    assert (await client.delete("/api/communities/guild-1/players/user-1")).status_code == 404


@pytest.mark.asyncio
async def test_create_players_scan_job(client):
    await client.put("/api/communities/guild-1/players/user-1", json={"channel_id": "chan-1", "player_id": "p-1"})

    response = await client.post("/api/communities/guild-1/scan-jobs", json={
        "channel_id": "chan-1",
        "job_type": "players",
        "start_date": "2025-11-01",
        "end_date": "2025-11-03",
    })

    assert response.status_code == 201
    job = response.json()
    assert job["status"] == "pending"
    assert job["job_type"] == "players"

    detail = (await client.get(f"/api/scan-jobs/{job['id']}")).json()
    assert detail["tasks"]["players"] == {"pending": 1}

    listed = (await client.get("/api/communities/guild-1/scan-jobs")).json()
    assert [j["id"] for j in listed] == [job["id"]]


@pytest.mark.asyncio
async def test_create_scan_job_rejects_reversed_dates(client):
    response = await client.post("/api/communities/guild-1/scan-jobs", json={
        "channel_id": "chan-1",
        "job_type": "players",
        "start_date": "2025-11-05",
        "end_date": "2025-11-01",
    })
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_clan_scan_job_when_api_is_down(client):
    response = await client.post("/api/communities/guild-1/scan-jobs", json={
        "channel_id": "chan-1",
        "job_type": "clan",
        "clan_tag": "FOO",
        "start_date": "2025-11-01",
    })
    assert response.status_code == 502


@pytest.mark.asyncio
async def test_unknown_scan_job_is_404(client):
    assert (await client.get("/api/scan-jobs/999")).status_code == 404


@pytest.mark.asyncio
async def test_leaderboard_ranks_and_pages(client, session_factory):
    async with session_factory() as session:
        ledger = StatsLedger(session)
        for username, game_id in [("alice", "g1"), ("alice", "g2"), ("bob", "g1")]:
            await ledger.record("guild-1", username, game_id, WinGameMode.TEAM, 1.0, "2025-10-02T10:00:00Z")
        await session.commit()

    response = await client.get(
        "/api/communities/guild-1/leaderboard",
        params={"period": "monthly", "month": "2025-10", "limit": 1, "offset": 1},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 2
    assert body["month"] == "2025-10"
    assert [(e["rank"], e["username"], e["wins"]) for e in body["entries"]] == [(2, "bob", 1)]

    rank = (await client.get(
        "/api/communities/guild-1/leaderboard/players/alice", params={"period": "all_time"}
    )).json()
    assert (rank["rank"], rank["wins"]) == (1, 2)


@pytest.mark.asyncio
async def test_leaderboard_rejects_bad_month(client):
    response = await client.get("/api/communities/guild-1/leaderboard", params={"month": "November"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_step_without_scheduler_is_503(client):
    assert (await client.post("/api/scan-jobs/step")).status_code == 503
