from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry.core.auth import get_current_user
from agentregistry.database import get_db
from agentregistry.models.confirmation import ChainConfirmation, Operation
from agentregistry.schemas.confirmation import (
    ConfirmationListResponse,
    ConfirmationStateResponse,
    ConfirmRequest,
    ConfirmResponse,
    PublishConfirmRequest,
    PublishPrepareResponse,
    ReviewsPrepareRequest,
    ReviewsPrepareResponse,
)
from agentregistry.services import agent_service
from agentregistry.services.confirmation_service import (
    ConfirmationService,
    get_confirmation_service,
)

router = APIRouter(prefix="/agents", tags=["agents"])


@router.post("/{agent_id}/publish", response_model=PublishPrepareResponse)
async def prepare_publish(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    result = await agent_service.prepare_publish(
        db, service, agent_id, user["sub"], user.get("address", "")
    )
    return PublishPrepareResponse(**result)


@router.get("/{agent_id}/agentcard.json")
async def get_agent_card(agent_id: str, db: AsyncSession = Depends(get_db)):
    return await agent_service.get_agent_card(db, agent_id)


@router.post("/{agent_id}/publish/confirm", response_model=ConfirmResponse)
async def confirm_publish(
    agent_id: str,
    req: PublishConfirmRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    await agent_service.get_owned_agent(db, agent_id, user["sub"])
    outcome = await service.confirm(
        db,
        entity_id=agent_id,
        operation=Operation.PUBLISH,
        tx_hash=req.tx_hash,
        chain_id=req.chain_id,
        client_result_id=req.token_id,
    )
    return ConfirmResponse.from_outcome(outcome)


@router.post("/{agent_id}/reviews/prepare", response_model=ReviewsPrepareResponse)
async def prepare_reviews(
    agent_id: str,
    req: ReviewsPrepareRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    result = await agent_service.prepare_reviews(
        db, service, agent_id, user["sub"], req.signer_address
    )
    return ReviewsPrepareResponse(**result)


@router.post("/{agent_id}/reviews/confirm", response_model=ConfirmResponse)
async def confirm_enable_reviews(
    agent_id: str,
    req: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    agent = await agent_service.get_owned_agent(db, agent_id, user["sub"])
    await agent_service.require_reviews_prepared(db, service, agent)
    outcome = await service.confirm(
        db,
        entity_id=agent_id,
        operation=Operation.ENABLE_REVIEWS,
        tx_hash=req.tx_hash,
        chain_id=req.chain_id,
    )
    return ConfirmResponse.from_outcome(outcome)


@router.get("/{agent_id}/confirmations", response_model=ConfirmationListResponse)
async def list_confirmations(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    records = await agent_service.list_confirmations(db, service, agent_id, user["sub"])
    return ConfirmationListResponse(
        entity_id=agent_id,
        confirmations=[await _state_to_response(db, service, r) for r in records],
    )


async def _state_to_response(
    db: AsyncSession, service: ConfirmationService, record: ChainConfirmation
) -> ConfirmationStateResponse:
    response = ConfirmationStateResponse.model_validate(record)
    if record.tx_hash and record.chain_id:
        response.explorer_url = await service.explorer_url(db, record.chain_id, record.tx_hash)
    return response
