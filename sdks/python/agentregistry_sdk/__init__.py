"""Agent registry Python SDK: API client plus crash-safe confirmation of on-chain operations."""

__version__ = "0.5.0"

from agentregistry_sdk.client import AgentRegistryClient, RegistryAPIError
from agentregistry_sdk.ledger import OperationType, PendingLedger, PendingRecord
from agentregistry_sdk.recovery import ConfirmationStatus, PendingOperationRunner, ResumeResult

__all__ = [
    "AgentRegistryClient",
    "ConfirmationStatus",
    "OperationType",
    "PendingLedger",
    "PendingOperationRunner",
    "PendingRecord",
    "RegistryAPIError",
    "ResumeResult",
]
