"""
Win record model.

The system of record for community leaderboards. Rows are inserted once
and never updated or deleted by the scan pipeline.
"""
import enum
from datetime import datetime
from sqlalchemy import BigInteger, String, Integer, Float, DateTime, Index, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from clanwins.models.base import Base, utcnow
from clanwins.models.scan_job import enum_values


class WinGameMode(str, enum.Enum):
    """Game mode a win was recorded for."""
    TEAM = "team"
    FFA = "ffa"


class WinRecord(Base):
    """One player's win in one game, scoped to a community."""
    __tablename__ = "win_records"
    __table_args__ = (
        UniqueConstraint("community_id", "username", "game_id", name="uq_win_records_community_user_game"),
        Index("ix_win_records_community_game_start", "community_id", "game_start"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[str] = mapped_column(String(32), nullable=False)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    game_id: Mapped[str] = mapped_column(String(64), nullable=False)
    game_mode: Mapped[WinGameMode] = mapped_column(
        SQLEnum(WinGameMode, native_enum=False, create_type=False, values_callable=enum_values),
        nullable=False,
        default=WinGameMode.TEAM
    )
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Unix seconds
    game_start: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<WinRecord(community_id={self.community_id}, username={self.username}, game_id={self.game_id})>"
