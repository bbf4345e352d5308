"""On-chain publication and confirmation service for agent registries."""

__version__ = "0.5.0"
