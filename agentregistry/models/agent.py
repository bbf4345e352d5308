import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from agentregistry.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Agent(Base):
    __tablename__ = "agents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=False)  # users live in the profile service
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False)
    description = Column(Text, default="")
    category = Column(String(50), default="other")
    icon_url = Column(String(255))
    endpoint_url = Column(String(255))
    price_per_call = Column(Numeric(12, 6), nullable=False, default=0)  # USDC
    agent_secret = Column(String(128))

    # Lifecycle: draft -> live (after the publish transaction is confirmed)
    status = Column(String(20), nullable=False, default="draft")
    agentcard_json = Column(Text)

    # Delegate that signs review authorizations on the owner's behalf
    feedback_signer_address = Column(String(42))

    published_at = Column(DateTime(timezone=True))
    reviews_enabled_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    reviews = relationship("Review", back_populates="agent", lazy="selectin")

    __table_args__ = (
        Index("idx_agents_owner", "owner_id"),
        Index("idx_agents_status", "status"),
    )


class Review(Base):
    __tablename__ = "agent_reviews"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_id = Column(String(36), ForeignKey("agents.id"), nullable=False)
    reviewer_address = Column(String(42), nullable=False)
    rating = Column(Integer, nullable=False)  # 1..5
    comment = Column(Text, default="")

    # pending -> confirmed (after the feedback transaction is confirmed)
    status = Column(String(20), nullable=False, default="pending")
    confirmed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    agent = relationship("Agent", back_populates="reviews", lazy="selectin")

    __table_args__ = (
        Index("idx_reviews_agent", "agent_id"),
        Index("idx_reviews_status", "status"),
    )
