"""
Leaderboard API routes.

Serves windowed community leaderboards built from recorded wins.
"""
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from clanwins.database import get_db
from clanwins.services.stats_ledger import LeaderboardPeriod, RankingType, StatsLedger


router = APIRouter(prefix="/api/communities/{community_id}", tags=["leaderboard"])


class LeaderboardEntryResponse(BaseModel):
    rank: int
    username: str
    wins: int
    team_wins: int
    ffa_wins: int
    total_score: float


class LeaderboardResponse(BaseModel):
    period: LeaderboardPeriod
    ranking_type: RankingType
    month: str | None = None
    total_count: int
    entries: list[LeaderboardEntryResponse]


class PlayerRankResponse(BaseModel):
    username: str
    rank: int
    wins: int
    total_score: float


def parse_month(month: str | None) -> date | None:
    """Parse a YYYY-MM query value."""
    if month is None:
        return None
    try:
        year, month_number = month.split("-")
        return date(int(year), int(month_number), 1)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid month. Use YYYY-MM (e.g. 2025-11)."
        )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    community_id: str,
    period: LeaderboardPeriod = LeaderboardPeriod.MONTHLY,
    ranking_type: RankingType = RankingType.WINS,
    month: str | None = Query(default=None, description="YYYY-MM; defaults to the current month"),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """Ranked wins for a community, for one month or all time."""
    month_context = parse_month(month)
    result = await StatsLedger(db).get_leaderboard(
        community_id,
        period,
        limit=limit,
        offset=offset,
        month=month_context,
        ranking_type=ranking_type,
    )
    return LeaderboardResponse(
        period=period,
        ranking_type=ranking_type,
        month=month_context.strftime("%Y-%m") if month_context else None,
        total_count=result.total_count,
        entries=[
            LeaderboardEntryResponse(rank=offset + index + 1, **vars(entry))
            for index, entry in enumerate(result.entries)
        ],
    )


@router.get("/leaderboard/players/{username}", response_model=PlayerRankResponse)
async def get_player_rank(
    community_id: str,
    username: str,
    period: LeaderboardPeriod = LeaderboardPeriod.MONTHLY,
    ranking_type: RankingType = RankingType.WINS,
    month: str | None = None,
    db: AsyncSession = Depends(get_db)
):
    """A single player's rank within the period."""
    rank = await StatsLedger(db).get_player_rank(
        community_id,
        username,
        period,
        month=parse_month(month),
        ranking_type=ranking_type,
    )
    if rank is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No wins recorded for {username} in this period"
        )
    return PlayerRankResponse(username=username, rank=rank.rank, wins=rank.wins, total_score=rank.total_score)
