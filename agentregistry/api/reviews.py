from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry.database import get_db
from agentregistry.models.confirmation import Operation
from agentregistry.schemas.confirmation import ConfirmRequest, ConfirmResponse
from agentregistry.services import agent_service
from agentregistry.services.confirmation_service import (
    ConfirmationService,
    get_confirmation_service,
)

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.patch("/{review_id}/confirm", response_model=ConfirmResponse)
async def confirm_review(
    review_id: str,
    req: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    # No session: the reviewer's wallet signed the feedback transaction itself.
    await agent_service.get_review(db, review_id)
    outcome = await service.confirm(
        db,
        entity_id=review_id,
        operation=Operation.SUBMIT_REVIEW,
        tx_hash=req.tx_hash,
        chain_id=req.chain_id,
    )
    return ConfirmResponse.from_outcome(outcome)
