import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint

from agentregistry.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Operation(str, enum.Enum):
    PUBLISH = "publish"
    ENABLE_REVIEWS = "enable_reviews"
    SUBMIT_REVIEW = "review"


UNCONFIRMED = "unconfirmed"
CONFIRMED = "confirmed"


class ChainConfirmation(Base):
    """Off-chain record of an on-chain action for one (entity, operation) pair.

    The only transition is unconfirmed -> confirmed, applied by a conditional
    UPDATE guarded on ``state = 'unconfirmed'``.
    """

    __tablename__ = "chain_confirmations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_id = Column(String(36), nullable=False)  # agent id or review id
    operation = Column(String(30), nullable=False)
    state = Column(String(20), nullable=False, default=UNCONFIRMED)

    tx_hash = Column(String(66))  # 0x + 64 hex, stored lowercase
    chain_id = Column(Integer)
    result_id = Column(String(78))  # uint256 as decimal string
    result_source = Column(String(20))  # logs | client | receipt

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("entity_id", "operation", name="uq_confirmation_entity_operation"),
        UniqueConstraint("operation", "chain_id", "tx_hash", name="uq_confirmation_tx"),
        Index("idx_confirmation_state", "state"),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.state == CONFIRMED
