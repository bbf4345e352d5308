from datetime import datetime

from pydantic import BaseModel, Field

TX_HASH_PATTERN = r"^0x[a-fA-F0-9]{64}$"


class ConfirmRequest(BaseModel):
    tx_hash: str = Field(..., pattern=TX_HASH_PATTERN)
    chain_id: int = Field(..., gt=0)


class PublishConfirmRequest(ConfirmRequest):
    # Client-supplied fallback, used only when the chain cannot say
    token_id: str | None = Field(None, pattern=r"^[1-9][0-9]*$", max_length=78)


class ConfirmResponse(BaseModel):
    status: str  # success | idempotent
    operation: str
    entity_id: str
    tx_hash: str
    chain_id: int
    result_id: str | None = None
    explorer_url: str | None = None

    @classmethod
    def from_outcome(cls, outcome) -> "ConfirmResponse":
        return cls(
            status=outcome.status,
            operation=outcome.operation.value,
            entity_id=outcome.entity_id,
            tx_hash=outcome.tx_hash,
            chain_id=outcome.chain_id,
            result_id=outcome.result_id,
            explorer_url=outcome.explorer_url,
        )


class PublishPrepareResponse(BaseModel):
    agent_id: str
    token_uri: str
    agent_card: dict
    checks: dict[str, bool]


class ReviewsPrepareRequest(BaseModel):
    signer_address: str = Field(..., pattern=r"^0x[a-fA-F0-9]{40}$")


class ReviewsPrepareResponse(BaseModel):
    agent_id: str
    signer_address: str
    token_id: str | None = None
    chain_id: int | None = None


class ConfirmationStateResponse(BaseModel):
    operation: str
    state: str
    tx_hash: str | None = None
    chain_id: int | None = None
    result_id: str | None = None
    result_source: str | None = None
    created_at: datetime
    confirmed_at: datetime | None = None
    explorer_url: str | None = None

    model_config = {"from_attributes": True}


class ConfirmationListResponse(BaseModel):
    entity_id: str
    confirmations: list[ConfirmationStateResponse]


class NetworkResponse(BaseModel):
    chain_id: int
    name: str
    network: str
    identity_registry_address: str | None = None
    reputation_registry_address: str | None = None
    block_explorer_url: str = ""
    is_testnet: bool


class NetworkListResponse(BaseModel):
    networks: list[NetworkResponse]
