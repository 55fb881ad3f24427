"""
Create the ClanWins tables straight from the models.

For local development and throwaway databases; deployments run
`alembic upgrade head` instead.

    python create_tables.py          # create missing tables
    python create_tables.py --reset  # drop everything first
"""
import argparse
import asyncio

from clanwins.database import engine
from clanwins.models.base import Base
# Models register their tables on Base.metadata when imported
from clanwins.models.notification import NotificationDelivery  # noqa: F401
from clanwins.models.player_registration import PlayerRegistration  # noqa: F401
from clanwins.models.scan_job import ScanJob  # noqa: F401
from clanwins.models.scan_task import ClanSessionTask, FFAGameTask, PlayerTask  # noqa: F401
from clanwins.models.win_record import WinRecord  # noqa: F401


async def create_tables(reset: bool = False):
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
            print("Dropped all tables")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


def main():
    parser = argparse.ArgumentParser(description="Create ClanWins database tables")
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()
    asyncio.run(create_tables(reset=args.reset))


if __name__ == "__main__":
    main()
