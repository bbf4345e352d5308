import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry import __version__
from agentregistry.database import get_db
from agentregistry.models.agent import Agent
from agentregistry.models.confirmation import UNCONFIRMED, ChainConfirmation
from agentregistry.services.confirmation_service import (
    ConfirmationService,
    get_confirmation_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    agents = (await db.execute(select(func.count(Agent.id)))).scalar() or 0
    unconfirmed = (
        await db.execute(
            select(func.count(ChainConfirmation.id)).where(ChainConfirmation.state == UNCONFIRMED)
        )
    ).scalar() or 0

    return {
        "status": "healthy",
        "version": __version__,
        "agents_count": agents,
        "unconfirmed_count": unconfirmed,
        "networks_loaded": service.networks.loaded,
    }


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed, database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
