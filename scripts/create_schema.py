#!/usr/bin/env python3
"""
create_schema.py
----------------

Creates (or recreates) the turfwar tables on the configured database.

USAGE:
  python scripts/create_schema.py            # create missing tables
  python scripts/create_schema.py --drop     # drop everything first (dev only)
  python scripts/create_schema.py --url postgresql+asyncpg://...

DATABASE_URL is read from the environment / .env when --url is omitted.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

from turfwar.core.config.config import Config
from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import get_logger, setup_logging, shutdown_logging
from turfwar.database.models import Base

logger = get_logger(__name__)


async def create_schema(url: Optional[str] = None, drop: bool = False) -> None:
    await DatabaseService.initialize(url)
    try:
        engine = DatabaseService.get_engine()
        async with engine.begin() as conn:
            if drop:
                if Config.is_production():
                    raise RuntimeError("Refusing to drop tables in production")
                await conn.run_sync(Base.metadata.drop_all)
                logger.warning("Dropped all turfwar tables")
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Schema ready",
            extra={"tables": sorted(Base.metadata.tables.keys())},
        )
    finally:
        await DatabaseService.shutdown()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create the turfwar database schema")
    parser.add_argument("--url", help="Async SQLAlchemy URL (defaults to DATABASE_URL)")
    parser.add_argument("--drop", action="store_true", help="Drop all tables first")
    args = parser.parse_args(argv)

    Config.load()
    setup_logging()
    try:
        asyncio.run(create_schema(args.url, drop=args.drop))
    finally:
        shutdown_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
