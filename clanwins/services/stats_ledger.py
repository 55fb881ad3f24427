"""
Stats ledger: win recording and leaderboard queries.

Win records are inserted with ON CONFLICT DO NOTHING on
(community_id, username, game_id), so revisiting a game any number of
times counts the win once.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clanwins.database import dialect_insert
from clanwins.models.win_record import WinGameMode, WinRecord
from clanwins.routes.metrics import track_win_recorded


class LeaderboardPeriod(str, enum.Enum):
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


class RankingType(str, enum.Enum):
    WINS = "wins"
    SCORE = "score"


@dataclass
class LeaderboardEntry:
    username: str
    wins: int
    team_wins: int
    ffa_wins: int
    total_score: float


@dataclass
class LeaderboardResult:
    entries: list[LeaderboardEntry] = field(default_factory=list)
    total_count: int = 0


@dataclass
class PlayerRank:
    rank: int
    wins: int
    total_score: float


def iso_to_timestamp(value: str) -> int:
    """Convert an ISO 8601 timestamp to integer unix seconds (naive means UTC)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def month_start(year: int, month: int) -> int:
    return int(datetime(year, month, 1, tzinfo=timezone.utc).timestamp())


def leaderboard_window(
    period: LeaderboardPeriod,
    month: date | None = None,
    now: datetime | None = None,
) -> tuple[int | None, int | None]:
    """
    Return the [lower, upper) unix-second bounds for a leaderboard period.

    None means unbounded. The current month (and any later one) is open
    ended; a past month is closed at the start of the following month.
    """
    if period == LeaderboardPeriod.ALL_TIME:
        return None, None

    now = now or datetime.now(timezone.utc)
    target = month or now.date()
    lower = month_start(target.year, target.month)

    if (target.year, target.month) >= (now.year, now.month):
        return lower, None

    if target.month == 12:
        upper = month_start(target.year + 1, 1)
    else:
        upper = month_start(target.year, target.month + 1)
    return lower, upper


class StatsLedger:
    """Records wins and aggregates them into leaderboards."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        community_id: str,
        username: str,
        game_id: str,
        game_mode: WinGameMode,
        score: float,
        game_start_iso: str,
    ) -> bool:
        """
        Insert a win, ignoring it if (community_id, username, game_id) exists.

        Does not commit. Returns True if a new row was written.
        """
        stmt = (
            dialect_insert(self.db, WinRecord)
            .values(
                community_id=community_id,
                username=username,
                game_id=game_id,
                game_mode=game_mode,
                score=score,
                game_start=iso_to_timestamp(game_start_iso),
            )
            .on_conflict_do_nothing(index_elements=["community_id", "username", "game_id"])
            .returning(WinRecord.id)
        )
        result = await self.db.execute(stmt)
        inserted = result.scalar_one_or_none() is not None
        if inserted:
            track_win_recorded(WinGameMode(game_mode).value)
        return inserted

    def _window_filters(self, community_id: str, lower: int | None, upper: int | None) -> list:
        filters = [WinRecord.community_id == community_id]
        if lower is not None:
            filters.append(WinRecord.game_start >= lower)
        if upper is not None:
            filters.append(WinRecord.game_start < upper)
        return filters

    def _aggregate(self, filters: list):
        wins = func.count(WinRecord.id).label("wins")
        total_score = func.coalesce(func.sum(WinRecord.score), 0.0).label("total_score")
        team_wins = func.count(case((WinRecord.game_mode == WinGameMode.TEAM, WinRecord.id))).label("team_wins")
        ffa_wins = func.count(case((WinRecord.game_mode == WinGameMode.FFA, WinRecord.id))).label("ffa_wins")
        return (
            select(WinRecord.username, wins, team_wins, ffa_wins, total_score)
            .where(*filters)
            .group_by(WinRecord.username)
        )

    async def get_leaderboard(
        self,
        community_id: str,
        period: LeaderboardPeriod,
        limit: int,
        offset: int = 0,
        month: date | None = None,
        ranking_type: RankingType = RankingType.WINS,
        now: datetime | None = None,
    ) -> LeaderboardResult:
        """
        Ranked win totals for one community and period.

        total_count counts every player in the window, regardless of the
        page requested.
        """
        lower, upper = leaderboard_window(period, month, now)
        filters = self._window_filters(community_id, lower, upper)

        count_stmt = select(func.count(func.distinct(WinRecord.username))).where(*filters)
        total_count = (await self.db.execute(count_stmt)).scalar_one()

        ranked = self._aggregate(filters).subquery()
        if ranking_type == RankingType.SCORE:
            order_by = (ranked.c.total_score.desc(), ranked.c.wins.desc(), ranked.c.username.asc())
        else:
            order_by = (ranked.c.wins.desc(), ranked.c.total_score.desc(), ranked.c.username.asc())

        stmt = select(ranked).order_by(*order_by).limit(limit).offset(offset)
        rows = (await self.db.execute(stmt)).all()

        return LeaderboardResult(
            entries=[
                LeaderboardEntry(
                    username=row.username,
                    wins=row.wins,
                    team_wins=row.team_wins,
                    ffa_wins=row.ffa_wins,
                    total_score=float(row.total_score),
                )
                for row in rows
            ],
            total_count=total_count,
        )

    async def get_player_rank(
        self,
        community_id: str,
        username: str,
        period: LeaderboardPeriod,
        month: date | None = None,
        ranking_type: RankingType = RankingType.WINS,
        now: datetime | None = None,
    ) -> PlayerRank | None:
        """Rank of one player within the period, or None if they have no wins in it."""
        lower, upper = leaderboard_window(period, month, now)
        filters = self._window_filters(community_id, lower, upper)

        ranked = self._aggregate(filters).subquery()
        player = (
            await self.db.execute(select(ranked).where(ranked.c.username == username))
        ).one_or_none()
        if player is None:
            return None

        if ranking_type == RankingType.SCORE:
            primary, secondary = ranked.c.total_score, ranked.c.wins
            player_primary, player_secondary = player.total_score, player.wins
        else:
            primary, secondary = ranked.c.wins, ranked.c.total_score
            player_primary, player_secondary = player.wins, player.total_score

        ahead_stmt = select(func.count()).select_from(ranked).where(
            (primary > player_primary)
            | ((primary == player_primary) & (secondary > player_secondary))
            | ((primary == player_primary) & (secondary == player_secondary) & (ranked.c.username < username))
        )
        ahead = (await self.db.execute(ahead_stmt)).scalar_one()

        return PlayerRank(rank=ahead + 1, wins=player.wins, total_score=float(player.total_score))
