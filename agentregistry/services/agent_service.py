import json
import logging
import re
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry.config import settings
from agentregistry.core.exceptions import (
    AgentNotFoundError,
    PreconditionFailedError,
    ReviewNotFoundError,
)
from agentregistry.models.agent import Agent, Review
from agentregistry.models.confirmation import ChainConfirmation, Operation
from agentregistry.services.confirmation_service import ConfirmationService

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def token_uri(agent_id: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/api/v1/agents/{agent_id}/agentcard.json"


async def get_agent(db: AsyncSession, agent_id: str) -> Agent:
    """Get an agent by ID or raise 404."""
    result = await db.execute(select(Agent).where(Agent.id == agent_id))
    agent = result.scalar_one_or_none()
    if not agent:
        raise AgentNotFoundError(agent_id)
    return agent


async def get_owned_agent(db: AsyncSession, agent_id: str, user_id: str) -> Agent:
    """Get an agent owned by ``user_id``. Someone else's agent is reported as missing."""
    agent = await get_agent(db, agent_id)
    if agent.owner_id != user_id:
        raise AgentNotFoundError(agent_id)
    return agent


async def get_review(db: AsyncSession, review_id: str) -> Review:
    result = await db.execute(select(Review).where(Review.id == review_id))
    review = result.scalar_one_or_none()
    if not review:
        raise ReviewNotFoundError(review_id)
    return review


def build_agent_card(agent: Agent, owner_address: str) -> dict:
    """ERC-8004 registration file served at the token URI."""
    return {
        "type": "https://eips.ethereum.org/EIPS/eip-8004#registration-v1",
        "name": agent.name,
        "description": agent.description or "",
        "image": agent.icon_url or "",
        "category": agent.category or "other",
        "owner": owner_address.lower(),
        "endpoints": [{"name": "A2A", "endpoint": agent.endpoint_url}],
        "pricePerCall": str(agent.price_per_call),
        "externalUrl": f"{settings.app_base_url.rstrip('/')}/agents/{agent.slug}",
        "supportedTrust": ["reputation"],
    }


def _publish_checks(agent: Agent) -> dict[str, bool]:
    return {
        "has_endpoint": bool(agent.endpoint_url),
        "has_price": agent.price_per_call is not None and agent.price_per_call > 0,
        "has_key": bool(agent.agent_secret),
        "not_published": agent.status != "live",
    }


async def prepare_publish(
    db: AsyncSession,
    service: ConfirmationService,
    agent_id: str,
    user_id: str,
    owner_address: str,
) -> dict:
    """Validate the agent, store its agent card and open the publish record.

    Returns the token URI the client registers on-chain.
    """
    agent = await get_owned_agent(db, agent_id, user_id)
    checks = _publish_checks(agent)

    if not checks["has_endpoint"]:
        raise PreconditionFailedError("Agent has no endpoint configured", "MISSING_ENDPOINT")
    if not checks["has_price"]:
        raise PreconditionFailedError("Agent price must be greater than zero", "MISSING_PRICE")
    if not checks["has_key"]:
        raise PreconditionFailedError("Agent has no secret key", "MISSING_KEY")
    if not checks["not_published"]:
        raise PreconditionFailedError("Agent is already published", "ALREADY_PUBLISHED")

    card = build_agent_card(agent, owner_address)
    agent.agentcard_json = json.dumps(card)
    agent.updated_at = datetime.now(timezone.utc)
    await db.commit()

    await service.get_or_create_record(db, agent_id, Operation.PUBLISH)
    logger.info("Prepared publish for agent %s", agent_id)

    return {
        "agent_id": agent_id,
        "token_uri": token_uri(agent_id),
        "agent_card": card,
        "checks": checks,
    }


async def get_agent_card(db: AsyncSession, agent_id: str) -> dict:
    agent = await get_agent(db, agent_id)
    if not agent.agentcard_json:
        raise AgentNotFoundError(agent_id)
    return json.loads(agent.agentcard_json)


async def _confirmed_publish(
    db: AsyncSession, service: ConfirmationService, agent: Agent
) -> ChainConfirmation:
    record = await service.get_record(db, agent.id, Operation.PUBLISH)
    if agent.status != "live" or record is None or not record.is_confirmed:
        raise PreconditionFailedError("Agent must be published first", "NOT_PUBLISHED")
    return record


async def prepare_reviews(
    db: AsyncSession,
    service: ConfirmationService,
    agent_id: str,
    user_id: str,
    signer_address: str,
) -> dict:
    """Record the delegate signer that will authorize reviews for this agent."""
    agent = await get_owned_agent(db, agent_id, user_id)
    publish = await _confirmed_publish(db, service, agent)

    if not _ADDRESS_RE.match(signer_address):
        raise PreconditionFailedError("Invalid signer address", "INVALID_SIGNER")

    agent.feedback_signer_address = signer_address.lower()
    agent.updated_at = datetime.now(timezone.utc)
    await db.commit()

    await service.get_or_create_record(db, agent_id, Operation.ENABLE_REVIEWS)
    logger.info("Prepared reviews for agent %s with signer %s", agent_id, signer_address.lower())

    return {
        "agent_id": agent_id,
        "signer_address": signer_address.lower(),
        "token_id": publish.result_id,
        "chain_id": publish.chain_id,
    }


async def require_reviews_prepared(
    db: AsyncSession, service: ConfirmationService, agent: Agent
) -> None:
    await _confirmed_publish(db, service, agent)
    if not agent.feedback_signer_address:
        raise PreconditionFailedError(
            "Reviews must be prepared before they can be enabled", "REVIEWS_NOT_PREPARED"
        )


async def list_confirmations(
    db: AsyncSession, service: ConfirmationService, agent_id: str, user_id: str
) -> list[ChainConfirmation]:
    await get_owned_agent(db, agent_id, user_id)
    return await service.list_records(db, agent_id)
