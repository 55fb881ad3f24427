"""
Notification Service

Posts scan job outcomes to a Discord channel, retrying rate-limited
sends after the delay Discord asks for.
"""
import asyncio

import httpx

from clanwins.config import settings
from clanwins.database import AsyncSessionLocal
from clanwins.logging_config import get_logger
from clanwins.models.notification import NotificationDelivery
from clanwins.models.scan_job import ScanJob
from clanwins.models.status import ScanJobType
from clanwins.routes.metrics import track_notification


log = get_logger(component="notifications")

# Used when a 429 carries no retry_after
DEFAULT_RETRY_AFTER_SECONDS = 1.0
MAX_RETRY_AFTER_SECONDS = 30.0


def retry_after_seconds(response: httpx.Response) -> float:
    """Delay requested by a 429 response (JSON retry_after, then Retry-After header)."""
    delay = None
    try:
        delay = response.json().get("retry_after")
    except (ValueError, AttributeError):
        pass
    if delay is None:
        delay = response.headers.get("Retry-After")
    try:
        delay = float(delay)
    except (TypeError, ValueError):
        delay = DEFAULT_RETRY_AFTER_SECONDS
    return min(max(delay, 0.0), MAX_RETRY_AFTER_SECONDS)


def format_date(value) -> str:
    return value.strftime("%Y-%m-%d")


def render_completion_message(job: ScanJob, games_processed: int) -> str:
    """Text posted when a scan job completes."""
    parts = [f"**Scan Complete** ({format_date(job.start_date)} to {format_date(job.end_date)})"]
    if job.job_type == ScanJobType.CLAN:
        parts.append(
            f"**Clan [{job.clan_tag}]:** {games_processed} wins processed, "
            f"{job.wins_recorded} player records added"
        )
    else:
        scope = f"clan [{job.clan_tag}]" if job.clan_tag else "registered players"
        parts.append(
            f"**FFA ({scope}):** {games_processed} games checked, "
            f"{job.wins_recorded} wins recorded"
        )
    return "\n".join(parts)


def render_failure_message(job: ScanJob) -> str:
    """Text posted when a scan job fails."""
    return (
        f"**Scan Failed** ({format_date(job.start_date)} to {format_date(job.end_date)})\n"
        "An error occurred while scanning historical wins. Please start a new scan."
    )


class DiscordNotifier:
    """
    Channel notification sink.

    Calling the notifier posts ``content`` to ``channel_id`` and returns
    True on success. Each send is tracked as a NotificationDelivery.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        session_factory=None,
        token: str | None = None,
        base_url: str | None = None,
        max_retries: int | None = None,
        sleep=asyncio.sleep,
    ):
        self.client = client
        self.session_factory = session_factory or AsyncSessionLocal
        self.token = token if token is not None else settings.DISCORD_BOT_TOKEN
        self.base_url = (base_url or settings.DISCORD_API_BASE_URL).rstrip("/")
        self.max_retries = max_retries or settings.NOTIFICATION_MAX_RETRIES
        self.sleep = sleep

    async def __call__(
        self,
        channel_id: str,
        content: str,
        community_id: str | None = None,
        job_id: int | None = None,
    ) -> bool:
        if not self.token:
            log.warning("notification_skipped", reason="DISCORD_BOT_TOKEN not set", channel_id=channel_id)
            track_notification("skipped")
            return False

        url = f"{self.base_url}/channels/{channel_id}/messages"
        headers = {
            "Authorization": f"Bot {self.token}",
            "Content-Type": "application/json",
        }

        async with self.session_factory() as db:
            delivery = NotificationDelivery(
                community_id=community_id,
                job_id=job_id,
                channel_id=channel_id,
                status="pending",
                attempts=0
            )
            db.add(delivery)
            await db.commit()

            client = self.client or httpx.AsyncClient(timeout=10.0)
            try:
                for attempt in range(self.max_retries):
                    delivery.attempts = attempt + 1
                    try:
                        response = await client.post(url, json={"content": content}, headers=headers)
                    except httpx.HTTPError as e:
                        delivery.status = "failed"
                        delivery.error_message = str(e)
                        await db.commit()
                        log.warning("notification_transport_error", channel_id=channel_id, error=str(e))
                        track_notification("failed")
                        return False

                    delivery.response_code = response.status_code

                    if response.is_success:
                        delivery.status = "delivered"
                        await db.commit()
                        log.info("notification_delivered", channel_id=channel_id, job_id=job_id)
                        track_notification("delivered")
                        return True

                    delivery.error_message = f"HTTP {response.status_code}"

                    if response.status_code != 429 or attempt == self.max_retries - 1:
                        break

                    delay = retry_after_seconds(response)
                    await db.commit()
                    log.info("notification_rate_limited", channel_id=channel_id, retry_after=delay, attempt=attempt + 1)
                    await self.sleep(delay)
            finally:
                if self.client is None:
                    await client.aclose()

            delivery.status = "failed"
            await db.commit()
            log.warning(
                "notification_failed",
                channel_id=channel_id,
                status_code=delivery.response_code,
                attempts=delivery.attempts,
            )
            track_notification("failed")
            return False
