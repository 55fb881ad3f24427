"""
Game-stats API client.

Read-only access to clan sessions, player sessions and game detail.
Every method returns None instead of raising when the upstream call
fails: transport errors, non-2xx responses and malformed bodies all
mean "no data" to the scan pipeline.
"""
from datetime import datetime
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from clanwins.config import settings
from clanwins.logging_config import get_logger
from clanwins.routes.metrics import track_stats_api_failure
from clanwins.schemas.stats_api import ClanSession, GameInfo, GameInfoResponse, PlayerSession


log = get_logger(component="stats_api")

_clan_sessions_adapter = TypeAdapter(list[ClanSession])
_player_sessions_adapter = TypeAdapter(list[PlayerSession])


def to_api_timestamp(value: datetime) -> str:
    """Format a datetime the way the API expects range bounds (ISO 8601, ms, Z)."""
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class StatsApiClient:
    """Thin async wrapper around the game-stats HTTP API."""

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        self.base_url = (base_url or settings.STATS_API_BASE_URL).rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.STATS_API_TIMEOUT_SECONDS)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def _get_json(self, endpoint: str, path: str, params: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            log.warning("stats_api_request_failed", endpoint=endpoint, url=url, error=str(e))
            track_stats_api_failure(endpoint)
            return None

        if not response.is_success:
            log.warning("stats_api_bad_status", endpoint=endpoint, url=url, status_code=response.status_code)
            track_stats_api_failure(endpoint)
            return None

        try:
            return response.json()
        except ValueError as e:
            log.warning("stats_api_malformed_body", endpoint=endpoint, url=url, error=str(e))
            track_stats_api_failure(endpoint)
            return None

    def _validate(self, endpoint: str, validate, payload):
        try:
            return validate(payload)
        except ValidationError as e:
            log.warning("stats_api_invalid_payload", endpoint=endpoint, errors=e.error_count())
            track_stats_api_failure(endpoint)
            return None

    async def get_clan_sessions(self, clan_tag: str, start: datetime, end: datetime) -> list[ClanSession] | None:
        """Sessions the clan played between start and end."""
        payload = await self._get_json(
            "clan_sessions",
            f"/public/clan/{quote(clan_tag, safe='')}/sessions",
            params={"start": to_api_timestamp(start), "end": to_api_timestamp(end)},
        )
        if payload is None:
            return None
        return self._validate("clan_sessions", _clan_sessions_adapter.validate_python, payload)

    async def get_player_sessions(self, player_id: str, start: datetime, end: datetime) -> list[PlayerSession] | None:
        """Sessions a player played between start and end."""
        payload = await self._get_json(
            "player_sessions",
            f"/public/player/{quote(player_id, safe='')}/sessions",
            params={"start": to_api_timestamp(start), "end": to_api_timestamp(end)},
        )
        if payload is None:
            return None
        return self._validate("player_sessions", _player_sessions_adapter.validate_python, payload)

    async def get_game_info(self, game_id: str) -> GameInfo | None:
        """Full game detail, without turns."""
        payload = await self._get_json(
            "game_info",
            f"/public/game/{quote(game_id, safe='')}",
            params={"turns": "false"},
        )
        if payload is None:
            return None
        parsed = self._validate("game_info", GameInfoResponse.model_validate, payload)
        return parsed.info if parsed else None
