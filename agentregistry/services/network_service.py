"""Supported-network configuration, cached per process.

The cache is an explicit object with ``invalidate()``; it is owned by the
confirmation service rather than living as a bare module global.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry.core.exceptions import UnsupportedChainError
from agentregistry.models.network import SupportedNetwork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkConfig:
    chain_id: int
    name: str
    network: str
    rpc_url: str
    identity_registry_address: str | None
    reputation_registry_address: str | None
    block_explorer_url: str
    is_testnet: bool

    def explorer_tx_url(self, tx_hash: str) -> str | None:
        if not self.block_explorer_url:
            return None
        return f"{self.block_explorer_url.rstrip('/')}/tx/{tx_hash}"


def _to_config(row: SupportedNetwork) -> NetworkConfig:
    return NetworkConfig(
        chain_id=row.chain_id,
        name=row.name,
        network=row.network,
        rpc_url=row.rpc_url,
        identity_registry_address=(row.identity_registry_address or "").lower() or None,
        reputation_registry_address=(row.reputation_registry_address or "").lower() or None,
        block_explorer_url=row.block_explorer_url or "",
        is_testnet=bool(row.is_testnet),
    )


class NetworkConfigCache:
    """Lazily loaded map of chain id -> NetworkConfig."""

    def __init__(self) -> None:
        self._networks: dict[int, NetworkConfig] | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._networks is not None

    async def _load(self, db: AsyncSession) -> dict[int, NetworkConfig]:
        result = await db.execute(
            select(SupportedNetwork).where(SupportedNetwork.is_enabled.is_(True))
        )
        networks: dict[int, NetworkConfig] = {}
        for row in result.scalars().all():
            if not row.rpc_url:
                logger.warning("Network %s has no rpc_url; skipping", row.chain_id)
                continue
            networks[row.chain_id] = _to_config(row)
        return networks

    async def _ensure_loaded(self, db: AsyncSession) -> dict[int, NetworkConfig]:
        if self._networks is not None:
            return self._networks
        async with self._lock:
            if self._networks is None:
                networks = await self._load(db)
                if not networks:
                    # Not cached: rows inserted later must become visible.
                    logger.warning("No enabled networks found in supported_networks")
                    return networks
                self._networks = networks
                logger.info("Loaded %d supported network(s)", len(networks))
            return self._networks

    async def get(self, db: AsyncSession, chain_id: int) -> NetworkConfig:
        networks = await self._ensure_loaded(db)
        config = networks.get(chain_id)
        if config is None:
            raise UnsupportedChainError(f"Network {chain_id} not supported or not enabled")
        return config

    async def all(self, db: AsyncSession) -> list[NetworkConfig]:
        networks = await self._ensure_loaded(db)
        return sorted(networks.values(), key=lambda n: n.chain_id)

    def invalidate(self) -> None:
        self._networks = None
        logger.info("Network configuration cache invalidated")
