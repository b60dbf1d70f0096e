from __future__ import annotations

import argparse
import asyncio
import logging

import asyncpg
from sqlalchemy.engine import make_url

from tasktrack_api.db.models import Base
from tasktrack_api.db.session import create_engine
from tasktrack_api.settings import get_settings

logger = logging.getLogger("tasktrack_api.scripts.create_schema")


def _quote_identifier(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


async def ensure_database(database_url: str) -> None:
    """Create the target Postgres database when it does not exist yet."""
    url = make_url(database_url)
    if not url.drivername.startswith("postgresql"):
        return
    target_database = url.database or "tasktrack"
    if target_database in {"postgres", ""}:
        return

    admin_url = url.set(database="postgres", drivername="postgresql").render_as_string(
        hide_password=False
    )
    conn = await asyncpg.connect(admin_url)
    try:
        exists = await conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1",
            target_database,
        )
        if exists:
            return
        await conn.execute(f"CREATE DATABASE {_quote_identifier(target_database)}")
        logger.info("Created database %s", target_database)
    finally:
        await conn.close()


async def create_schema(database_url: str, *, drop: bool = False) -> None:
    await ensure_database(database_url)
    engine = create_engine(database_url)
    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the users and tasks tables.")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL.")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    database_url = args.database_url or get_settings().database_url
    asyncio.run(create_schema(database_url, drop=args.drop))


if __name__ == "__main__":
    main()
