"""
Pytest configuration and shared fixtures.

Each test gets its own SQLite database file so concurrent sessions
contend on a real write lock, the way separate scheduler invocations
contend on the production database.
"""
import json

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from clanwins.models.base import Base
from clanwins.models.notification import NotificationDelivery  # noqa: F401
from clanwins.models.player_registration import PlayerRegistration  # noqa: F401
from clanwins.models.scan_job import ScanJob  # noqa: F401
from clanwins.models.scan_task import ClanSessionTask, FFAGameTask, PlayerTask  # noqa: F401
from clanwins.models.win_record import WinRecord  # noqa: F401
from clanwins.services.stats_api import StatsApiClient


STATS_BASE_URL = "https://stats.test"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "concurrency: exercises concurrent claims against one database")


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clanwins.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class RecordingNotifier:
    """Notification sink that remembers what it was asked to send."""

    def __init__(self):
        self.sent = []

    async def __call__(self, channel_id, content, community_id=None, job_id=None):
        self.sent.append({"channel_id": channel_id, "content": content, "job_id": job_id})
        return True


@pytest.fixture
def notifier():
    return RecordingNotifier()


class FakeStatsApi:
    """
    Routes game-stats API requests to canned payloads.

    Unknown paths answer 404, which the client treats as "no data".
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, path, payload, status_code=200):
        self.routes[path] = (status_code, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, payload = self.routes.get(request.url.path, (404, {"error": "not found"}))
        return httpx.Response(status_code, content=json.dumps(payload).encode())

    def client(self) -> StatsApiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return StatsApiClient(client=http_client, base_url=STATS_BASE_URL)


@pytest.fixture
def fake_stats():
    return FakeStatsApi()


@pytest.fixture
async def stats_api(fake_stats):
    client = fake_stats.client()
    yield client
    await client.client.aclose()


def game_payload(game_id, players, start_ms=1762000000000, winner=None, ranked_type=None,
                 game_type="Public", game_mode="Team"):
    """Build a /public/game/{id} response body."""
    return {
        "info": {
            "gameID": game_id,
            "config": {"gameType": game_type, "gameMode": game_mode, "rankedType": ranked_type},
            "players": [
                {"clientID": client_id, "username": username, "clanTag": clan_tag}
                for client_id, username, clan_tag in players
            ],
            "start": start_ms,
            "winner": winner,
        }
    }


@pytest.fixture
def make_game():
    return game_payload
