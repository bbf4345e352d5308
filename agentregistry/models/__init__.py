from agentregistry.models.agent import Agent, Review
from agentregistry.models.confirmation import ChainConfirmation, Operation
from agentregistry.models.network import SupportedNetwork

__all__ = [
    "Agent",
    "ChainConfirmation",
    "Operation",
    "Review",
    "SupportedNetwork",
]
