"""
Status enums and transition tables for scan jobs and their sub-tasks.

Every status change in the store is a conditional UPDATE whose WHERE
clause is built from these tables, so an update that would leave a
terminal state simply matches no row.
"""
import enum

from clanwins.exceptions import InvalidStatusTransition


class ScanJobStatus(str, enum.Enum):
    """Scan job status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanJobType(str, enum.Enum):
    """Scan job type enum."""
    CLAN = "clan"
    PLAYERS = "players"


class TaskStatus(str, enum.Enum):
    """Sub-task status enum (clan sessions, players, FFA games)."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


# processing -> processing is a (stale) reclaim
JOB_TRANSITIONS: dict[ScanJobStatus, frozenset[ScanJobStatus]] = {
    ScanJobStatus.PENDING: frozenset({ScanJobStatus.PROCESSING, ScanJobStatus.FAILED}),
    ScanJobStatus.PROCESSING: frozenset({
        ScanJobStatus.PROCESSING,
        ScanJobStatus.COMPLETED,
        ScanJobStatus.FAILED,
    }),
    ScanJobStatus.COMPLETED: frozenset(),
    ScanJobStatus.FAILED: frozenset(),
}

TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING}),
    TaskStatus.PROCESSING: frozenset({TaskStatus.PROCESSING, TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}

OPEN_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.PROCESSING)


def sources_for(transitions: dict, target: enum.Enum) -> list:
    """
    Return the statuses allowed to move to ``target``.

    Raises InvalidStatusTransition when no status may reach it, so callers
    never issue an UPDATE that is wrong by construction.
    """
    sources = sorted(
        (status for status, targets in transitions.items() if target in targets),
        key=lambda status: status.value,
    )
    if not sources:
        raise InvalidStatusTransition(f"No status may transition to {target.value!r}")
    return sources

