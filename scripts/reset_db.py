"""Drop and recreate all database tables, optionally reseeding supported networks."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agentregistry.database import dispose_engine, drop_db, init_db


async def _reset_db(seed_networks: bool) -> None:
    print("Dropping all tables...")
    await drop_db()
    print("Creating all tables...")
    await init_db()
    if seed_networks:
        from seed_networks import seed

        await seed()
    await dispose_engine()
    print("Database reset complete.")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reset the local registry database.")
    parser.add_argument(
        "--seed-networks",
        action="store_true",
        help="Insert the default supported networks after recreating the tables.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    asyncio.run(_reset_db(args.seed_networks))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
