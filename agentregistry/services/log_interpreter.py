"""Derive the minted agent id from a registration receipt's event logs.

Registry deployments and client libraries do not all emit the same log shape,
so the id is looked for with an ordered chain of strategies; the first one
that yields a value wins:

1. ``AgentRegistered(uint256 indexed agentId, address indexed owner, string tokenURI)``
   decoded against its ABI.
2. ERC-721 ``Transfer(address indexed from, address indexed to, uint256 indexed tokenId)``
   where ``from`` is the zero address (a mint).
3. Raw topic scan against the two known signature hashes, reading the id from
   a fixed topic position and accepting it only when ``0 < id < 10**9``.

A failure inside one strategy never stops the next one from running.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, event_abi_to_log_topic

from agentregistry.services.rpc_reader import LogEntry

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

AGENT_REGISTERED_EVENT = {
    "type": "event",
    "name": "AgentRegistered",
    "inputs": [
        {"indexed": True, "name": "agentId", "type": "uint256"},
        {"indexed": True, "name": "owner", "type": "address"},
        {"indexed": False, "name": "tokenURI", "type": "string"},
    ],
}

ERC721_TRANSFER_EVENT = {
    "type": "event",
    "name": "Transfer",
    "inputs": [
        {"indexed": True, "name": "from", "type": "address"},
        {"indexed": True, "name": "to", "type": "address"},
        {"indexed": True, "name": "tokenId", "type": "uint256"},
    ],
}

# Raw signature hashes as emitted by the deployed registries, mapped to
# (topic index holding the id, minimum topic count).
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
AGENT_REGISTERED_TOPIC = "0xca52e62c367d81bb2e328eb795f7c7ba24afb478408a26c0e201d155c449bc4a"
RAW_ID_POSITIONS: dict[str, tuple[int, int]] = {
    TRANSFER_TOPIC: (3, 4),
    AGENT_REGISTERED_TOPIC: (1, 2),
}

# Anything outside (0, MAX_RAW_ID) is a hash or padding misread as an integer.
MAX_RAW_ID = 10 ** 9

Strategy = Callable[[Sequence[LogEntry]], int | None]


def decode_event(log: LogEntry, event_abi: dict) -> dict | None:
    """Decode ``log`` against ``event_abi``.

    Returns None when the log's signature is a different event; raises
    ValueError or DecodingError when the signature matches but the log is
    malformed (wrong topic count, undecodable data).
    """
    if not log.topics or decode_hex(log.topics[0]) != event_abi_to_log_topic(event_abi):
        return None

    indexed = [i for i in event_abi["inputs"] if i["indexed"]]
    plain = [i for i in event_abi["inputs"] if not i["indexed"]]
    if len(log.topics) - 1 != len(indexed):
        raise ValueError(
            f"{event_abi['name']} expects {len(indexed)} indexed topics, got {len(log.topics) - 1}"
        )

    args: dict = {}
    for param, topic in zip(indexed, log.topics[1:]):
        (args[param["name"]],) = abi_decode([param["type"]], decode_hex(topic))
    if plain:
        values = abi_decode([p["type"] for p in plain], decode_hex(log.data))
        args.update(zip((p["name"] for p in plain), values))
    return args


def _decoded(logs: Iterable[LogEntry], event_abi: dict) -> Iterable[dict]:
    for log in logs:
        try:
            args = decode_event(log, event_abi)
        except (ValueError, DecodingError) as exc:
            logger.debug("Skipping undecodable %s log: %s", event_abi["name"], exc)
            continue
        if args is not None:
            yield args


def registered_event_id(logs: Sequence[LogEntry]) -> int | None:
    for args in _decoded(logs, AGENT_REGISTERED_EVENT):
        return int(args["agentId"])
    return None


def mint_transfer_id(logs: Sequence[LogEntry]) -> int | None:
    for args in _decoded(logs, ERC721_TRANSFER_EVENT):
        if args["from"].lower() == ZERO_ADDRESS:
            return int(args["tokenId"])
    return None


def raw_topic_id(logs: Sequence[LogEntry]) -> int | None:
    for log in logs:
        if not log.topics:
            continue
        position = RAW_ID_POSITIONS.get(log.topics[0].lower())
        if position is None:
            continue
        index, min_topics = position
        if len(log.topics) < min_topics:
            continue
        try:
            value = int(log.topics[index], 16)
        except ValueError:
            continue
        if 0 < value < MAX_RAW_ID:
            return value
        logger.debug("Rejecting out-of-range raw id %d from topic %d", value, index)
    return None


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("agent_registered", registered_event_id),
    ("mint_transfer", mint_transfer_id),
    ("raw_topics", raw_topic_id),
)


class LogInterpreter:
    """Runs the id strategies in order over a receipt's logs."""

    def __init__(self, strategies: Sequence[tuple[str, Strategy]] = DEFAULT_STRATEGIES):
        self.strategies = tuple(strategies)

    def extract_identifier(
        self,
        logs: Sequence[LogEntry],
        contract_address: str | None = None,
    ) -> int | None:
        """Return the first id any strategy finds, or None.

        When ``contract_address`` is given only logs emitted by that contract
        are considered.
        """
        if contract_address:
            wanted = contract_address.lower()
            logs = [log for log in logs if log.address.lower() == wanted]

        for name, strategy in self.strategies:
            try:
                value = strategy(logs)
            except Exception:
                logger.debug("Log strategy %s raised, trying next", name, exc_info=True)
                continue
            if value is not None:
                logger.debug("Log strategy %s produced id %d", name, value)
                return value
        return None


log_interpreter = LogInterpreter()
