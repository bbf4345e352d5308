"""Insert or update the supported networks the registry contracts are deployed on."""

from __future__ import annotations

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agentregistry.database import async_session, dispose_engine, init_db
from agentregistry.models.network import SupportedNetwork

NETWORKS = [
    {
        "chain_id": 8453,
        "network": "eip155:8453",
        "name": "Base",
        "rpc_url": "https://mainnet.base.org",
        # Registries not deployed on mainnet yet
        "identity_registry_address": None,
        "reputation_registry_address": None,
        "block_explorer_url": "https://basescan.org",
        "is_testnet": False,
        "is_enabled": True,
    },
    {
        "chain_id": 84532,
        "network": "eip155:84532",
        "name": "Base Sepolia",
        "rpc_url": "https://sepolia.base.org",
        "identity_registry_address": "0x7177a6867296406881E20d6647232314736Dd09A",
        "reputation_registry_address": "0xB5048e3ef1DA4E04deB6f7d0423D06F63869e322",
        "block_explorer_url": "https://sepolia.basescan.org",
        "is_testnet": True,
        "is_enabled": True,
    },
]


async def seed() -> None:
    async with async_session() as session:
        for fields in NETWORKS:
            await session.merge(SupportedNetwork(**fields))
            print(f"  Upserted network {fields['chain_id']} ({fields['name']})")
        await session.commit()


async def _main() -> None:
    await init_db()
    await seed()
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(_main())
