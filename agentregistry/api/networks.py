from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry.core.auth import get_current_user_id
from agentregistry.database import get_db
from agentregistry.schemas.confirmation import NetworkListResponse, NetworkResponse
from agentregistry.services.confirmation_service import (
    ConfirmationService,
    get_confirmation_service,
)

router = APIRouter(prefix="/networks", tags=["networks"])


@router.get("", response_model=NetworkListResponse)
async def list_networks(
    db: AsyncSession = Depends(get_db),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    networks = await service.networks.all(db)
    return NetworkListResponse(
        networks=[
            NetworkResponse(
                chain_id=n.chain_id,
                name=n.name,
                network=n.network,
                identity_registry_address=n.identity_registry_address,
                reputation_registry_address=n.reputation_registry_address,
                block_explorer_url=n.block_explorer_url,
                is_testnet=n.is_testnet,
            )
            for n in networks
        ]
    )


@router.post("/refresh")
async def refresh_networks(
    _: str = Depends(get_current_user_id),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    """Drop the cached network table so the next request reloads it."""
    service.networks.invalidate()
    return {"status": "invalidated"}
