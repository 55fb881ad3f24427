"""
Scan job model.

A scan job backfills one community's historical wins over a date range.
Work is split into sub-tasks (see scan_task.py) that are claimed and
completed independently across scheduler invocations.
"""
from datetime import datetime
from sqlalchemy import String, Text, Integer, DateTime, Index, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from clanwins.models.base import Base, TimestampMixin
from clanwins.models.status import ScanJobStatus, ScanJobType


def enum_values(enum_cls):
    """Persist enum values ("pending") rather than member names ("PENDING")."""
    return [member.value for member in enum_cls]


class ScanJob(Base, TimestampMixin):
    """
    Scan job model.
    
    started_at is the first claim; claimed_at is the current claim and is
    cleared when an invocation hands the job back after a non-final batch.
    """
    __tablename__ = "scan_jobs"
    __table_args__ = (
        Index("ix_scan_jobs_status_created_at", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    clan_tag: Mapped[str | None] = mapped_column(String(16), nullable=True)
    job_type: Mapped[ScanJobType] = mapped_column(
        SQLEnum(ScanJobType, native_enum=False, create_type=False, values_callable=enum_values),
        nullable=False
    )
    status: Mapped[ScanJobStatus] = mapped_column(
        SQLEnum(ScanJobStatus, native_enum=False, create_type=False, values_callable=enum_values),
        nullable=False,
        default=ScanJobStatus.PENDING
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    wins_recorded: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    def __repr__(self):
        return f"<ScanJob(id={self.id}, type={self.job_type}, status={self.status})>"
