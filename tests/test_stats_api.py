"""
Game-stats API client tests.

Every failure mode of the upstream API reads as "no data".
"""
from datetime import datetime, timezone

import httpx
import pytest

from clanwins.services.stats_api import StatsApiClient, to_api_timestamp


START = datetime(2025, 11, 1, tzinfo=timezone.utc)
END = datetime(2025, 11, 2, 23, 59, 59, 999000, tzinfo=timezone.utc)


def test_api_timestamp_has_milliseconds_and_z():
    assert to_api_timestamp(END) == "2025-11-02T23:59:59.999Z"


@pytest.mark.asyncio
async def test_game_info_parses_epoch_millis_and_winner(fake_stats, stats_api, make_game):
    fake_stats.add("/public/game/g1", make_game(
        "g1", [("c1", "alice", "FOO"), ("c2", "bob", None)], start_ms=1762000000000, winner=["player", "c2"]
    ))

    game = await stats_api.get_game_info("g1")

    assert game.start == datetime(2025, 11, 1, 12, 26, 40, tzinfo=timezone.utc)
    assert game.winning_player.username == "bob"
    assert [p.username for p in game.players_in_clan("FOO")] == ["alice"]
    assert fake_stats.requests[0].url.params["turns"] == "false"


@pytest.mark.asyncio
async def test_team_winner_has_no_winning_player(fake_stats, stats_api, make_game):
    fake_stats.add("/public/game/g1", make_game("g1", [("c1", "alice", "FOO")], winner=["team", "Red"]))

    game = await stats_api.get_game_info("g1")

    assert game.winner_client_id is None
    assert game.winning_player is None


@pytest.mark.asyncio
async def test_clan_tag_is_path_encoded(fake_stats, stats_api):
    await stats_api.get_clan_sessions("A/B", START, END)
    assert fake_stats.requests[0].url.raw_path.startswith(b"/public/clan/A%2FB/sessions")


@pytest.mark.asyncio
async def test_player_sessions_are_parsed(fake_stats, stats_api):
    fake_stats.add("/public/player/p-1/sessions", [
        {"gameId": "g1", "gameType": "Public", "gameMode": "Free For All", "hasWon": True, "extra": 1},
    ])

    [session] = await stats_api.get_player_sessions("p-1", START, END)

    assert session.is_public_ffa_win()
    assert session.clan_tag is None


@pytest.mark.asyncio
async def test_non_success_status_is_no_data(fake_stats, stats_api):
    fake_stats.add("/public/game/g1", {"error": "rate limited"}, status_code=429)
    assert await stats_api.get_game_info("g1") is None


@pytest.mark.asyncio
async def test_malformed_payload_is_no_data(fake_stats, stats_api):
    fake_stats.add("/public/clan/FOO/sessions", {"not": "a list"})
    assert await stats_api.get_clan_sessions("FOO", START, END) is None


@pytest.mark.asyncio
async def test_transport_error_is_no_data():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = StatsApiClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), base_url="https://x.test")
    try:
        assert await client.get_game_info("g1") is None
    finally:
        await client.client.aclose()


@pytest.mark.asyncio
async def test_invalid_json_is_no_data():
    def handler(request):
        return httpx.Response(200, content=b"<html>")

    client = StatsApiClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), base_url="https://x.test")
    try:
        assert await client.get_clan_sessions("FOO", START, END) is None
    finally:
        await client.client.aclose()
