from sqlalchemy import Boolean, Column, Integer, String

from agentregistry.database import Base


class SupportedNetwork(Base):
    """Chains the registry contracts are deployed on. Read through NetworkConfigCache."""

    __tablename__ = "supported_networks"

    chain_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    network = Column(String(30), nullable=False)  # CAIP-2, e.g. "eip155:84532"
    rpc_url = Column(String(255), nullable=False)
    identity_registry_address = Column(String(42))
    reputation_registry_address = Column(String(42))
    block_explorer_url = Column(String(255), default="")
    is_testnet = Column(Boolean, nullable=False, default=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
