"""
Game-stats API response schemas.

Only the fields the scan pipeline reads are declared; everything else
in the upstream payloads is ignored.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


GAME_TYPE_PUBLIC = "Public"
GAME_MODE_FFA = "Free For All"
GAME_MODE_TEAM = "Team"


class StatsModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ClanSession(StatsModel):
    """A clan's participation in one game."""
    game_id: str = Field(alias="gameId")
    clan_tag: str = Field(alias="clanTag")
    has_won: bool = Field(alias="hasWon")
    score: float = 0.0
    game_start: str | None = Field(default=None, alias="gameStart")


class PlayerSession(StatsModel):
    """A player's participation in one game."""
    game_id: str = Field(alias="gameId")
    game_type: str = Field(alias="gameType")
    game_mode: str = Field(alias="gameMode")
    has_won: bool = Field(alias="hasWon")
    clan_tag: str | None = Field(default=None, alias="clanTag")
    username: str | None = None

    def is_public_ffa_win(self) -> bool:
        return (
            self.has_won
            and self.game_type == GAME_TYPE_PUBLIC
            and self.game_mode == GAME_MODE_FFA
        )


class GameConfig(StatsModel):
    game_type: str | None = Field(default=None, alias="gameType")
    game_mode: str | None = Field(default=None, alias="gameMode")
    ranked_type: str | None = Field(default=None, alias="rankedType")


class GamePlayer(StatsModel):
    client_id: str = Field(alias="clientID")
    username: str
    clan_tag: str | None = Field(default=None, alias="clanTag")


class GameInfo(StatsModel):
    """
    Full game detail.

    ``start`` arrives as epoch milliseconds; ``winner`` as
    ``["player", clientID]`` or null.
    """
    game_id: str = Field(alias="gameID")
    config: GameConfig = Field(default_factory=GameConfig)
    players: list[GamePlayer] = Field(default_factory=list)
    start: datetime
    winner: list[str] | None = None

    @property
    def winner_client_id(self) -> str | None:
        if not self.winner or len(self.winner) < 2 or self.winner[0] != "player":
            return None
        return self.winner[1]

    @property
    def winning_player(self) -> GamePlayer | None:
        client_id = self.winner_client_id
        if client_id is None:
            return None
        return next((p for p in self.players if p.client_id == client_id), None)

    def players_in_clan(self, clan_tag: str) -> list[GamePlayer]:
        return [p for p in self.players if p.clan_tag == clan_tag]


class GameInfoResponse(StatsModel):
    info: GameInfo
