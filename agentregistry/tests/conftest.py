"""Shared test fixtures for the agent registry test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions). The chain is a
FakeChain wired into a fresh ConfirmationService per test.
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agentregistry.database import Base, get_db
from agentregistry.main import app
from agentregistry.models import *  # noqa: ensure all models are loaded for create_all
from agentregistry.services.confirmation_service import (
    ConfirmationService,
    get_confirmation_service,
)
from agentregistry.tests.fakes import (
    CHAIN_ID,
    IDENTITY_REGISTRY,
    OWNER_ADDRESS,
    REPUTATION_REGISTRY,
    FakeChain,
    SleepRecorder,
)


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def service(chain: FakeChain, sleeps: SleepRecorder) -> ConfirmationService:
    """ConfirmationService reading from the fake chain; backoff sleeps are recorded, not slept."""
    return ConfirmationService(
        reader_factory=chain.reader,
        max_attempts=5,
        base_delay=3.0,
        deadline=60.0,
        sleep=sleeps,
    )


@pytest.fixture
async def client(service: ConfirmationService):
    """httpx AsyncClient wired to the FastAPI app with test DB and chain overrides."""
    import httpx

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_confirmation_service] = lambda: service

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def auth_header():
    """Return a callable that builds an Authorization header from a JWT."""
    def _build(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
    return _build


@pytest.fixture
def make_network(db: AsyncSession):
    """Factory fixture: create a SupportedNetwork row with both registries deployed."""
    from agentregistry.models.network import SupportedNetwork

    async def _make(chain_id: int = CHAIN_ID, **overrides):
        fields = dict(
            chain_id=chain_id,
            name="Base Sepolia",
            network="eip155:84532",
            rpc_url="https://sepolia.base.org",
            identity_registry_address=IDENTITY_REGISTRY,
            reputation_registry_address=REPUTATION_REGISTRY,
            block_explorer_url="https://sepolia.basescan.org",
            is_testnet=True,
            is_enabled=True,
        )
        fields.update(overrides)
        network = SupportedNetwork(**fields)
        db.add(network)
        await db.commit()
        return network

    return _make


@pytest.fixture
def make_agent(db: AsyncSession):
    """Factory fixture: create a publishable Agent and return (agent, jwt_token)."""
    from agentregistry.core.auth import create_access_token
    from agentregistry.models.agent import Agent

    async def _make(owner_id: str = None, **overrides):
        owner_id = owner_id or _new_id()
        suffix = _new_id()[:8]
        fields = dict(
            id=_new_id(),
            owner_id=owner_id,
            name=f"test-agent-{suffix}",
            slug=f"test-agent-{suffix}",
            description="Summarizes things",
            category="productivity",
            endpoint_url="https://agent.example.com/a2a",
            price_per_call=Decimal("0.010000"),
            agent_secret="sk_test_" + suffix,
        )
        fields.update(overrides)
        agent = Agent(**fields)
        db.add(agent)
        await db.commit()
        await db.refresh(agent)
        token = create_access_token(owner_id, OWNER_ADDRESS)
        return agent, token

    return _make


@pytest.fixture
def make_review(db: AsyncSession):
    """Factory fixture: create a pending Review for an agent."""
    from agentregistry.models.agent import Review

    async def _make(agent_id: str, rating: int = 5):
        review = Review(
            id=_new_id(),
            agent_id=agent_id,
            reviewer_address="0x" + "cd" * 20,
            rating=rating,
            comment="Fast and accurate",
        )
        db.add(review)
        await db.commit()
        await db.refresh(review)
        return review

    return _make
