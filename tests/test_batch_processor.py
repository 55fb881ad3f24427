"""
Batch processor tests.

Drives CLAN and PLAYERS jobs through the processor against a fake
game-stats API and checks the recorded wins, task bookkeeping and the
completion notification.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from clanwins.models.status import ScanJobStatus, ScanJobType
from clanwins.schemas.stats_api import GameInfo
from clanwins.services.batch_processor import GAME_UNAVAILABLE, BatchProcessor
from clanwins.services.player_registration_service import PlayerRegistrationService
from clanwins.services.scan_job_service import ScanJobService
from clanwins.services.stats_ledger import LeaderboardPeriod, StatsLedger


START = datetime(2025, 11, 1, tzinfo=timezone.utc)
END = datetime(2025, 11, 30, 23, 59, 59, tzinfo=timezone.utc)


@pytest.fixture
def processor(stats_api, notifier, session_factory):
    return BatchProcessor(
        stats_api=stats_api,
        notifier=notifier,
        session_factory=session_factory,
        clan_batch_size=50,
        player_batch_size=1,
        ffa_batch_size=40,
    )


@pytest.fixture
def bare_processor():
    return BatchProcessor(stats_api=None, notifier=None)


async def claim(session_factory):
    async with session_factory() as session:
        return await ScanJobService(session).claim_next_job()


async def reload(session_factory, job_id):
    async with session_factory() as session:
        return await ScanJobService(session).get_job_by_id(job_id)


def add_foo_sessions(fake_stats, make_game):
    fake_stats.add("/public/clan/FOO/sessions", [
        {"gameId": "gameA", "clanTag": "FOO", "hasWon": True, "score": 1.5},
        {"gameId": "gameB", "clanTag": "FOO", "hasWon": True, "score": 0.8},
    ])
    fake_stats.add("/public/game/gameA", make_game("gameA", [
        ("c1", "alice", "FOO"),
        ("c2", "bob", "FOO"),
        ("c3", "carl", "BAR"),
    ]))
    fake_stats.add("/public/game/gameB", make_game("gameB", [
        ("c1", "alice", "FOO"),
        ("c4", "dan", "BAR"),
    ]))


async def create_clan_job(db, stats_api):
    return await ScanJobService(db).create_scan_job(
        "guild-1", "chan-1", ScanJobType.CLAN, START, END, clan_tag="FOO", stats_api=stats_api
    )


@pytest.mark.asyncio
async def test_clan_job_records_each_clan_member(db, session_factory, fake_stats, make_game, stats_api, processor, notifier):
    add_foo_sessions(fake_stats, make_game)
    job = await create_clan_job(db, stats_api)

    result = await processor.process(await claim(session_factory))

    assert result.tasks_processed == 2
    assert result.wins_recorded == 3
    assert result.job_completed is True

    stored = await reload(session_factory, job.id)
    assert stored.status == ScanJobStatus.COMPLETED
    assert stored.wins_recorded == 3

    async with session_factory() as session:
        board = await StatsLedger(session).get_leaderboard("guild-1", LeaderboardPeriod.ALL_TIME, limit=10)
    assert [(e.username, e.wins) for e in board.entries] == [("alice", 2), ("bob", 1)]
    assert board.entries[0].total_score == pytest.approx(2.3)
    assert board.entries[0].team_wins == 2

    [message] = notifier.sent
    assert message["channel_id"] == "chan-1"
    assert "2 wins processed" in message["content"]
    assert "3 player records added" in message["content"]


@pytest.mark.asyncio
async def test_rescanning_the_same_games_adds_nothing(db, session_factory, fake_stats, make_game, stats_api, processor):
    add_foo_sessions(fake_stats, make_game)
    await create_clan_job(db, stats_api)
    await processor.process(await claim(session_factory))

    second = await create_clan_job(db, stats_api)
    result = await processor.process(await claim(session_factory))

    assert result.wins_recorded == 0
    assert (await reload(session_factory, second.id)).wins_recorded == 0
    async with session_factory() as session:
        board = await StatsLedger(session).get_leaderboard("guild-1", LeaderboardPeriod.ALL_TIME, limit=10)
    assert sum(e.wins for e in board.entries) == 3


@pytest.mark.asyncio
async def test_clan_job_spans_several_batches(db, session_factory, fake_stats, make_game, stats_api, notifier):
    add_foo_sessions(fake_stats, make_game)
    job = await create_clan_job(db, stats_api)
    processor = BatchProcessor(
        stats_api=stats_api, notifier=notifier, session_factory=session_factory, clan_batch_size=1
    )
    claimed = await claim(session_factory)

    first = await processor.process(claimed)
    assert first.tasks_processed == 1
    assert first.job_completed is False
    assert notifier.sent == []

    second = await processor.process(claimed)
    assert second.job_completed is True
    assert (await reload(session_factory, job.id)).wins_recorded == 3


@pytest.mark.asyncio
async def test_missing_game_detail_completes_task_without_wins(db, session_factory, fake_stats, stats_api, processor):
    fake_stats.add("/public/clan/FOO/sessions", [
        {"gameId": "gone", "clanTag": "FOO", "hasWon": True, "score": 1.0},
    ])
    job = await create_clan_job(db, stats_api)

    result = await processor.process(await claim(session_factory))

    assert result.wins_recorded == 0
    assert result.job_completed is True
    async with session_factory() as session:
        counts = await ScanJobService(session).get_task_counts(job.id)
    assert counts["clan_sessions"] == {"completed": 1}


def add_player_sessions(fake_stats, make_game):
    fake_stats.add("/public/player/p-1/sessions", [
        {"gameId": "g1", "gameType": "Public", "gameMode": "Free For All", "hasWon": True, "clanTag": "FOO"},
        {"gameId": "g2", "gameType": "Public", "gameMode": "Team", "hasWon": True, "clanTag": "FOO"},
        {"gameId": "g3", "gameType": "Public", "gameMode": "Free For All", "hasWon": False, "clanTag": "FOO"},
    ])
    fake_stats.add("/public/player/p-2/sessions", [
        {"gameId": "g1", "gameType": "Public", "gameMode": "Free For All", "hasWon": True, "clanTag": "FOO"},
        {"gameId": "g4", "gameType": "Public", "gameMode": "Free For All", "hasWon": True, "clanTag": "FOO"},
        {"gameId": "g5", "gameType": "Public", "gameMode": "Free For All", "hasWon": True, "clanTag": "BAR"},
        {"gameId": "g6", "gameType": "Private", "gameMode": "Free For All", "hasWon": True, "clanTag": "FOO"},
    ])
    fake_stats.add("/public/game/g1", make_game(
        "g1", [("c1", "alice", "FOO"), ("c2", "erin", "BAR")], winner=["player", "c1"], game_mode="Free For All"
    ))
    fake_stats.add("/public/game/g4", make_game(
        "g4", [("c1", "bob", "FOO")], winner=["player", "c1"], ranked_type="1v1", game_mode="Free For All"
    ))


async def create_players_job(db, clan_tag="FOO"):
    registrations = PlayerRegistrationService(db)
    await registrations.register_player("guild-1", "chan-1", "user-1", "p-1")
    await registrations.register_player("guild-1", "chan-1", "user-2", "p-2")
    return await ScanJobService(db).create_scan_job(
        "guild-1", "chan-1", ScanJobType.PLAYERS, START, END, clan_tag=clan_tag
    )


@pytest.mark.asyncio
async def test_players_job_discovers_before_processing(db, session_factory, fake_stats, make_game, processor, notifier):
    add_player_sessions(fake_stats, make_game)
    job = await create_players_job(db)
    claimed = await claim(session_factory)

    first = await processor.process(claimed)
    assert first.phase == "player_discovery"
    assert first.games_discovered == 1
    assert first.job_completed is False

    second = await processor.process(claimed)
    assert second.phase == "player_discovery"
    assert second.games_discovered == 1
    assert second.job_completed is False
    assert notifier.sent == []

    async with session_factory() as session:
        counts = await ScanJobService(session).get_task_counts(job.id)
    assert counts["players"] == {"completed": 2}
    assert counts["ffa_games"] == {"pending": 2}

    third = await processor.process(claimed)
    assert third.phase == "ffa_games"
    assert third.tasks_processed == 2
    assert third.wins_recorded == 1
    assert third.job_completed is True

    stored = await reload(session_factory, job.id)
    assert stored.status == ScanJobStatus.COMPLETED
    assert stored.wins_recorded == 1

    async with session_factory() as session:
        board = await StatsLedger(session).get_leaderboard("guild-1", LeaderboardPeriod.ALL_TIME, limit=10)
    assert [(e.username, e.ffa_wins, e.total_score) for e in board.entries] == [("alice", 1, 0.0)]

    [message] = notifier.sent
    assert "2 games checked" in message["content"]


@pytest.mark.asyncio
async def test_unavailable_player_sessions_do_not_block_the_job(db, session_factory, processor):
    job = await create_players_job(db)
    claimed = await claim(session_factory)

    await processor.process(claimed)
    result = await processor.process(claimed)

    assert result.job_completed is True
    async with session_factory() as session:
        counts = await ScanJobService(session).get_task_counts(job.id)
    assert counts["players"] == {"completed": 2}
    assert counts["ffa_games"] == {}


@pytest.mark.asyncio
async def test_players_job_without_players_completes_on_first_step(db, session_factory, processor, notifier):
    job = await ScanJobService(db).create_scan_job("guild-1", "chan-1", ScanJobType.PLAYERS, START, END)

    result = await processor.process(await claim(session_factory))

    assert result.job_completed is True
    assert (await reload(session_factory, job.id)).status == ScanJobStatus.COMPLETED
    assert len(notifier.sent) == 1


def ffa_game(make_game, winner, players, ranked_type=None):
    return GameInfo.model_validate(
        make_game("g", players, winner=winner, ranked_type=ranked_type, game_mode="Free For All")["info"]
    )


@pytest.mark.parametrize("winner,players,ranked_type,reason", [
    (["player", "c1"], [("c1", "alice", "FOO")], "1v1", "ranked game"),
    (["player", "c1"], [("c1", "alice", "FOO")], "", "ranked game"),
    (None, [("c1", "alice", "FOO")], None, "no winner"),
    (["player", "c9"], [("c1", "alice", "FOO")], None, "no winner"),
    (["player", "c1"], [("c1", "alice", "BAR")], None, "winner not in clan"),
    (["player", "c1"], [("c1", "alice", "FOO")], None, None),
])
def test_ffa_skip_reasons(bare_processor, make_game, winner, players, ranked_type, reason):
    job = type("Job", (), {"clan_tag": "FOO"})()
    game = ffa_game(make_game, winner, players, ranked_type)
    assert bare_processor._ffa_skip_reason(job, game) == reason


def test_ffa_skip_reason_for_missing_game(bare_processor):
    job = type("Job", (), {"clan_tag": "FOO"})()
    assert bare_processor._ffa_skip_reason(job, None) == GAME_UNAVAILABLE


def test_ffa_without_clan_tag_accepts_any_winner(bare_processor, make_game):
    job = type("Job", (), {"clan_tag": None})()
    game = ffa_game(make_game, ["player", "c1"], [("c1", "alice", None)])
    assert bare_processor._ffa_skip_reason(job, game) is None


class FlakyStatsApi:
    """Game detail where one game errors immediately and another answers late."""

    def __init__(self, make_game):
        self.make_game = make_game

    async def get_game_info(self, game_id):
        if game_id == "gameA":
            raise RuntimeError("boom")
        await asyncio.sleep(0.2)
        return GameInfo.model_validate(self.make_game(game_id, [("c1", "alice", "FOO")])["info"])


@pytest.mark.asyncio
async def test_failing_item_waits_for_its_siblings(db, session_factory, fake_stats, make_game, stats_api, notifier):
    fake_stats.add("/public/clan/FOO/sessions", [
        {"gameId": "gameA", "clanTag": "FOO", "hasWon": True, "score": 1.0},
        {"gameId": "gameB", "clanTag": "FOO", "hasWon": True, "score": 1.0},
    ])
    job = await create_clan_job(db, stats_api)
    processor = BatchProcessor(
        stats_api=FlakyStatsApi(make_game), notifier=notifier, session_factory=session_factory
    )

    with pytest.raises(RuntimeError, match="boom"):
        await processor.process(await claim(session_factory))

    # By the time the error surfaces, nothing from the batch is still running
    async with session_factory() as session:
        counts = await ScanJobService(session).get_task_counts(job.id)
    assert counts["clan_sessions"] == {"completed": 1, "processing": 1}
    assert (await reload(session_factory, job.id)).wins_recorded == 1
    assert notifier.sent == []
