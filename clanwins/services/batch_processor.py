"""
Batch processor for scan jobs.

Each call processes one bounded batch of a claimed job:

- CLAN jobs claim clan session tasks, fetch each game and record a win
  for every player of the tracked clan.
- PLAYERS jobs first discover FFA wins from each registered player's
  session history (player tasks), and only once every player task is
  done check the discovered games for a clan winner (FFA game tasks).

Items of a batch run concurrently. Each item records its wins and
completes its task in its own transaction, so work committed before an
invocation is killed is never redone.
"""
import asyncio
from dataclasses import dataclass

from clanwins.config import settings
from clanwins.database import AsyncSessionLocal
from clanwins.logging_config import get_logger
from clanwins.models.scan_job import ScanJob
from clanwins.models.scan_task import ClanSessionTask, FFAGameTask, PlayerTask
from clanwins.models.status import ScanJobType
from clanwins.models.win_record import WinGameMode
from clanwins.routes.metrics import track_job_completed, track_tasks_processed
from clanwins.services.notification_service import render_completion_message
from clanwins.services.scan_job_service import ScanJobService
from clanwins.services.scan_task_service import ScanTaskService
from clanwins.services.stats_api import StatsApiClient
from clanwins.services.stats_ledger import StatsLedger


log = get_logger(component="batch_processor")

GAME_UNAVAILABLE = "game detail unavailable"
SESSIONS_UNAVAILABLE = "player sessions unavailable"


@dataclass
class BatchResult:
    """Outcome of one batch."""
    phase: str
    tasks_processed: int = 0
    wins_recorded: int = 0
    games_discovered: int = 0
    job_completed: bool = False


class BatchProcessor:
    """Runs one batch of a claimed scan job."""

    def __init__(
        self,
        stats_api: StatsApiClient,
        notifier,
        session_factory=None,
        clan_batch_size: int | None = None,
        player_batch_size: int | None = None,
        ffa_batch_size: int | None = None,
        stale_seconds: int | None = None,
    ):
        self.stats_api = stats_api
        self.notifier = notifier
        self.session_factory = session_factory or AsyncSessionLocal
        self.clan_batch_size = clan_batch_size or settings.CLAN_BATCH_SIZE
        self.player_batch_size = player_batch_size or settings.PLAYER_BATCH_SIZE
        self.ffa_batch_size = ffa_batch_size or settings.FFA_BATCH_SIZE
        self.stale_seconds = stale_seconds

    async def process(self, job: ScanJob) -> BatchResult:
        if job.job_type == ScanJobType.CLAN:
            return await self.process_clan_batch(job)
        if job.job_type == ScanJobType.PLAYERS:
            return await self.process_player_batch(job)
        raise ValueError(f"Unknown scan job type: {job.job_type}")

    async def _run_items(self, coros) -> list:
        """
        Run a batch's items concurrently and wait for all of them.

        If any item raised, the first exception is re-raised only after
        every sibling has finished.
        """
        results = await asyncio.gather(*coros, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            if len(errors) > 1:
                log.warning("batch_items_failed", failed=len(errors))
            raise errors[0]
        return results

    # ------------------------------------------------------------------
    # CLAN jobs
    # ------------------------------------------------------------------

    async def process_clan_batch(self, job: ScanJob) -> BatchResult:
        async with self.session_factory() as db:
            tasks = await ScanTaskService(db, self.stale_seconds).claim_batch(
                ClanSessionTask, job.id, self.clan_batch_size
            )

        recorded = await self._run_items(self._process_clan_session(job, task) for task in tasks)
        track_tasks_processed("clan_session", len(tasks))

        result = BatchResult(phase="clan_sessions", tasks_processed=len(tasks), wins_recorded=sum(recorded))
        log.info("clan_batch_processed", tasks=len(tasks), wins_recorded=result.wins_recorded)

        async with self.session_factory() as db:
            remaining = await ScanTaskService(db).count_open(ClanSessionTask, job.id)
        if remaining == 0:
            result.job_completed = await self._complete(job, ClanSessionTask)
        return result

    async def _process_clan_session(self, job: ScanJob, task: ClanSessionTask) -> int:
        game = await self.stats_api.get_game_info(task.game_id)

        async with self.session_factory() as db:
            tasks = ScanTaskService(db)
            if game is None:
                log.info("clan_game_unavailable", game_id=task.game_id)
                await tasks.complete_task(ClanSessionTask, task.id, error_message=GAME_UNAVAILABLE)
                await db.commit()
                return 0

            ledger = StatsLedger(db)
            inserted = 0
            for player in game.players_in_clan(job.clan_tag):
                if await ledger.record(
                    job.community_id,
                    player.username,
                    task.game_id,
                    WinGameMode.TEAM,
                    task.score,
                    game.start.isoformat(),
                ):
                    inserted += 1

            await ScanJobService(db).add_wins_recorded(job.id, inserted)
            await tasks.complete_task(ClanSessionTask, task.id)
            await db.commit()
            return inserted

    # ------------------------------------------------------------------
    # PLAYERS jobs
    # ------------------------------------------------------------------

    async def process_player_batch(self, job: ScanJob) -> BatchResult:
        """
        One batch of a PLAYERS job.

        FFA game tasks only exist once discovery has produced them, so the
        processing phase (and the completion check that depends on it)
        waits until no player task is open.
        """
        async with self.session_factory() as db:
            open_players = await ScanTaskService(db).count_open(PlayerTask, job.id)

        if open_players > 0:
            result = await self._discover_ffa_games(job)
        else:
            result = await self._process_ffa_games(job)

        async with self.session_factory() as db:
            tasks = ScanTaskService(db)
            open_players = await tasks.count_open(PlayerTask, job.id)
            open_games = await tasks.count_open(FFAGameTask, job.id)
        if open_players == 0 and open_games == 0:
            result.job_completed = await self._complete(job, FFAGameTask)
        return result

    async def _discover_ffa_games(self, job: ScanJob) -> BatchResult:
        async with self.session_factory() as db:
            tasks = await ScanTaskService(db, self.stale_seconds).claim_batch(
                PlayerTask, job.id, self.player_batch_size
            )

        discovered = await self._run_items(self._discover_player(job, task) for task in tasks)
        track_tasks_processed("player", len(tasks))

        result = BatchResult(phase="player_discovery", tasks_processed=len(tasks), games_discovered=sum(discovered))
        log.info("player_batch_processed", tasks=len(tasks), games_discovered=result.games_discovered)
        return result

    async def _discover_player(self, job: ScanJob, task: PlayerTask) -> int:
        sessions = await self.stats_api.get_player_sessions(task.player_id, job.start_date, job.end_date)

        async with self.session_factory() as db:
            tasks = ScanTaskService(db)
            if sessions is None:
                # Best effort: a player we cannot fetch never blocks the job
                log.info("player_sessions_unavailable", player_id=task.player_id)
                await tasks.complete_task(PlayerTask, task.id, error_message=SESSIONS_UNAVAILABLE)
                await db.commit()
                return 0

            added = 0
            for session in sessions:
                if not session.is_public_ffa_win():
                    continue
                if job.clan_tag and session.clan_tag != job.clan_tag:
                    continue
                if await tasks.add_ffa_game(job.id, session.game_id):
                    added += 1

            await tasks.complete_task(PlayerTask, task.id)
            await db.commit()
            return added

    async def _process_ffa_games(self, job: ScanJob) -> BatchResult:
        async with self.session_factory() as db:
            tasks = await ScanTaskService(db, self.stale_seconds).claim_batch(
                FFAGameTask, job.id, self.ffa_batch_size
            )

        recorded = await self._run_items(self._process_ffa_game(job, task) for task in tasks)
        track_tasks_processed("ffa_game", len(tasks))

        result = BatchResult(phase="ffa_games", tasks_processed=len(tasks), wins_recorded=sum(recorded))
        log.info("ffa_batch_processed", tasks=len(tasks), wins_recorded=result.wins_recorded)
        return result

    def _ffa_skip_reason(self, job: ScanJob, game) -> str | None:
        if game is None:
            return GAME_UNAVAILABLE
        if game.config.ranked_type is not None:
            return "ranked game"
        winner = game.winning_player
        if winner is None:
            return "no winner"
        if job.clan_tag and winner.clan_tag != job.clan_tag:
            return "winner not in clan"
        return None

    async def _process_ffa_game(self, job: ScanJob, task: FFAGameTask) -> int:
        game = await self.stats_api.get_game_info(task.game_id)

        async with self.session_factory() as db:
            tasks = ScanTaskService(db)
            skip_reason = self._ffa_skip_reason(job, game)
            if skip_reason is not None:
                log.debug("ffa_game_skipped", game_id=task.game_id, reason=skip_reason)
                error = skip_reason if skip_reason == GAME_UNAVAILABLE else None
                await tasks.complete_task(FFAGameTask, task.id, error_message=error)
                await db.commit()
                return 0

            # FFA wins carry no weighted score
            inserted = await StatsLedger(db).record(
                job.community_id,
                game.winning_player.username,
                task.game_id,
                WinGameMode.FFA,
                0,
                game.start.isoformat(),
            )
            await ScanJobService(db).add_wins_recorded(job.id, int(inserted))
            await tasks.complete_task(FFAGameTask, task.id)
            await db.commit()
            return int(inserted)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def _complete(self, job: ScanJob, game_model) -> bool:
        """
        Complete the job and notify its channel.

        Only the invocation whose conditional update completes the job
        sends the message.
        """
        async with self.session_factory() as db:
            jobs = ScanJobService(db)
            completed = await jobs.complete_job(job.id)
            if completed is None:
                log.info("scan_job_already_finished", job_id=job.id)
                return False
            counts = await jobs.get_task_counts(job.id)

        games_key = "clan_sessions" if game_model is ClanSessionTask else "ffa_games"
        games_processed = sum(counts[games_key].values())

        track_job_completed(completed.job_type.value)
        log.info("scan_job_completed", job_id=job.id, wins_recorded=completed.wins_recorded)

        await self.notifier(
            completed.channel_id,
            render_completion_message(completed, games_processed),
            community_id=completed.community_id,
            job_id=completed.id,
        )
        return True
