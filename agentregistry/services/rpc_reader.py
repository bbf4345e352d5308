"""Read-only JSON-RPC access to an EVM node.

Two calls only: wait for a transaction receipt and fetch a raw transaction.
No retry loops here; transport errors (``httpx.HTTPError``), JSON-RPC errors
and timeouts propagate to the caller, which wraps reads in ``with_retry``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


class RpcError(Exception):
    """Error object returned by the node."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC error {code}: {message}")


class ReceiptTimeoutError(TimeoutError):
    """No receipt with enough confirmations appeared within the timeout."""


class TransactionNotFoundError(LookupError):
    """The node does not know the transaction."""


# Everything a chain read can raise that the confirmation flow treats as
# "the node could not answer right now".
CHAIN_READ_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    RpcError,
    TimeoutError,
    asyncio.TimeoutError,
    ValueError,
    KeyError,
)


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: tuple[str, ...]
    data: str = "0x"


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    succeeded: bool
    logs: tuple[LogEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ChainTransaction:
    tx_hash: str
    from_address: str
    to_address: str | None
    block_number: int | None  # None while still in the mempool


class RpcReader:
    """JSON-RPC reader bound to one node URL.

    Args:
        rpc_url: Node endpoint.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        request_timeout: Timeout for a single HTTP round trip.
        poll_interval: Delay between receipt polls while waiting.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        request_timeout: float = 10.0,
        poll_interval: float = 2.0,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.rpc_url = rpc_url
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock
        self._client = httpx.AsyncClient(transport=transport, timeout=request_timeout)

    async def __aenter__(self) -> RpcReader:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(_request_ids),
        }
        response = await self._client.post(self.rpc_url, json=payload)
        response.raise_for_status()
        body = response.json()
        if body.get("error"):
            error = body["error"]
            raise RpcError(error.get("code", -1), error.get("message", "Unknown error"))
        return body.get("result")

    async def get_receipt(
        self,
        tx_hash: str,
        *,
        confirmations: int = 1,
        timeout: float = 30.0,
    ) -> TransactionReceipt:
        """Poll until the receipt exists with ``confirmations`` blocks on top of it.

        Raises ReceiptTimeoutError when ``timeout`` elapses first.
        """
        deadline = self._clock() + timeout
        while True:
            raw = await self._call("eth_getTransactionReceipt", [tx_hash])
            if raw is not None:
                receipt = parse_receipt(raw)
                if confirmations <= 1:
                    return receipt
                head = int(await self._call("eth_blockNumber", []), 16)
                if head - receipt.block_number + 1 >= confirmations:
                    return receipt

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ReceiptTimeoutError(
                    f"No receipt for {tx_hash} with {confirmations} confirmation(s) after {timeout:.0f}s"
                )
            logger.debug("Receipt for %s not ready on %s, polling again", tx_hash, self.rpc_url)
            await self._sleep(min(self._poll_interval, remaining))

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        raw = await self._call("eth_getTransactionByHash", [tx_hash])
        if raw is None:
            raise TransactionNotFoundError(f"Transaction {tx_hash} not found")
        return parse_transaction(raw)


# ---------------------------------------------------------------------------
# Response parsing (pure functions, no I/O)
# ---------------------------------------------------------------------------

def parse_receipt(raw: dict[str, Any]) -> TransactionReceipt:
    status = raw.get("status")
    # Pre-Byzantium receipts carry a state root instead of a status field.
    succeeded = status is None or int(status, 16) == 1
    logs = tuple(
        LogEntry(
            address=(log.get("address") or "").lower(),
            topics=tuple(t.lower() for t in log.get("topics", [])),
            data=log.get("data") or "0x",
        )
        for log in raw.get("logs", [])
    )
    return TransactionReceipt(
        tx_hash=raw["transactionHash"].lower(),
        block_number=int(raw["blockNumber"], 16),
        succeeded=succeeded,
        logs=logs,
    )


def parse_transaction(raw: dict[str, Any]) -> ChainTransaction:
    block_number = raw.get("blockNumber")
    return ChainTransaction(
        tx_hash=raw["hash"].lower(),
        from_address=raw["from"].lower(),
        to_address=raw["to"].lower() if raw.get("to") else None,
        block_number=int(block_number, 16) if block_number else None,
    )
