"""
Scan sub-task models.

ClanSessionTask: one winning clan match, created with a ClanScan job.
PlayerTask: one registered player, created with a PlayerScan job.
FFAGameTask: one FFA win discovered while scanning a player's sessions.
"""
from datetime import datetime
from sqlalchemy import String, Text, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from clanwins.models.base import Base
from clanwins.models.scan_job import enum_values
from clanwins.models.status import TaskStatus


class ScanTaskMixin:
    """Columns shared by every sub-task table."""
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("scan_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[TaskStatus] = mapped_column(
        SQLEnum(TaskStatus, native_enum=False, create_type=False, values_callable=enum_values),
        nullable=False,
        default=TaskStatus.PENDING
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ClanSessionTask(ScanTaskMixin, Base):
    """A winning clan session; score is the weighted score reported by the API."""
    __tablename__ = "clan_session_tasks"
    __table_args__ = (
        UniqueConstraint("job_id", "game_id", name="uq_clan_session_tasks_job_game"),
    )

    game_id: Mapped[str] = mapped_column(String(64), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    def __repr__(self):
        return f"<ClanSessionTask(job_id={self.job_id}, game_id={self.game_id}, status={self.status})>"


class PlayerTask(ScanTaskMixin, Base):
    """A registered player whose session history is scanned for FFA wins."""
    __tablename__ = "player_tasks"
    __table_args__ = (
        UniqueConstraint("job_id", "player_id", name="uq_player_tasks_job_player"),
    )

    player_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self):
        return f"<PlayerTask(job_id={self.job_id}, player_id={self.player_id}, status={self.status})>"


class FFAGameTask(ScanTaskMixin, Base):
    """
    An FFA game to check for a clan winner.
    
    Unique per job so two registered players sharing a game schedule it once.
    """
    __tablename__ = "ffa_game_tasks"
    __table_args__ = (
        UniqueConstraint("job_id", "game_id", name="uq_ffa_game_tasks_job_game"),
    )

    game_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self):
        return f"<FFAGameTask(job_id={self.job_id}, game_id={self.game_id}, status={self.status})>"
