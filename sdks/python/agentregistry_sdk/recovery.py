"""Drive pending operations to a server-side confirmation, and resume them after a restart.

``submit`` writes the ledger record before anything else, then confirms in a
background task. ``resume_all`` re-drives whatever the ledger still holds.

Ledger policy after a confirmation attempt:

* success -> record cleared
* 409 conflict -> record cleared (it can never succeed)

A record is only cleared while it still holds the attempted transaction; a
newer submission for the same operation type survives an older one finishing.
* 503 or any other failure -> record kept for the next resume
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from agentregistry_sdk.client import AgentRegistryClient, RegistryAPIError
from agentregistry_sdk.ledger import OperationType, PendingLedger, PendingRecord

logger = logging.getLogger(__name__)

# Waits until the transaction is mined: (tx_hash, chain_id) -> anything.
ReceiptWaiter = Callable[[str, int], Awaitable[Any]]


class ConfirmationStatus(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class OperationState:
    status: ConfirmationStatus = ConfirmationStatus.IDLE
    message: str | None = None
    result: dict | None = None


@dataclass(frozen=True)
class ResumeResult:
    operation: OperationType
    tx_hash: str
    status: ConfirmationStatus
    cleared: bool
    message: str | None = None
    result: dict | None = None


class PendingOperationRunner:
    def __init__(
        self,
        client: AgentRegistryClient,
        ledger: PendingLedger,
        *,
        receipt_waiter: ReceiptWaiter | None = None,
    ):
        self.client = client
        self.ledger = ledger
        self.receipt_waiter = receipt_waiter
        self._states: dict[OperationType, OperationState] = {}
        self._tasks: set[asyncio.Task] = set()

    def status(self, operation: OperationType) -> OperationState:
        return self._states.get(OperationType(operation), OperationState())

    def _set_state(self, operation: OperationType, status: ConfirmationStatus, message=None, result=None) -> None:
        self._states[operation] = OperationState(status=status, message=message, result=result)

    async def submit(
        self,
        operation: OperationType,
        tx_hash: str,
        chain_id: int,
        entity_id: str,
        token_id: str | None = None,
    ) -> asyncio.Task:
        """Persist the pending record, then confirm it in the background.

        The returned task resolves to a ResumeResult; callers may await it or
        poll ``status(operation)``.
        """
        record = self.ledger.set_pending(operation, tx_hash, chain_id, entity_id, token_id)
        self._set_state(record.operation, ConfirmationStatus.PROCESSING)

        task = asyncio.create_task(
            self._drive(record), name=f"confirm-{record.operation.value}-{record.tx_hash[:10]}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _drive(self, record: PendingRecord) -> ResumeResult:
        if self.receipt_waiter is not None:
            try:
                await self.receipt_waiter(record.tx_hash, record.chain_id)
            except Exception as exc:
                logger.warning("Waiting for receipt of %s failed: %s; kept for resume", record.tx_hash, exc)
                self._set_state(record.operation, ConfirmationStatus.ERROR, str(exc))
                return ResumeResult(record.operation, record.tx_hash, ConfirmationStatus.ERROR, False, str(exc))
        return await self.confirm_pending(record)

    async def _call_server(self, record: PendingRecord) -> dict:
        if record.operation is OperationType.PUBLISH:
            return await self.client.confirm_publish(
                record.entity_id, record.tx_hash, record.chain_id, record.token_id
            )
        if record.operation is OperationType.ENABLE_REVIEWS:
            return await self.client.confirm_enable_reviews(record.entity_id, record.tx_hash, record.chain_id)
        return await self.client.confirm_review(record.entity_id, record.tx_hash, record.chain_id)

    async def confirm_pending(self, record: PendingRecord) -> ResumeResult:
        """One confirmation attempt for ``record``, applying the ledger policy."""
        op = record.operation
        if op.requires_session and not self.client.has_token:
            message = "Auth required"
            self._set_state(op, ConfirmationStatus.ERROR, message)
            return ResumeResult(op, record.tx_hash, ConfirmationStatus.ERROR, False, message)

        self._set_state(op, ConfirmationStatus.PROCESSING)
        try:
            result = await self._call_server(record)
        except RegistryAPIError as exc:
            if exc.is_conflict:
                cleared = self.ledger.clear_pending(op, expected_tx_hash=record.tx_hash)
                logger.warning("Pending %s %s conflicts with server state; cleared", op.value, record.tx_hash)
                self._set_state(op, ConfirmationStatus.ERROR, exc.message)
                return ResumeResult(op, record.tx_hash, ConfirmationStatus.ERROR, cleared, exc.message)
            logger.info("Pending %s %s not confirmed yet (%s); kept", op.value, record.tx_hash, exc)
            self._set_state(op, ConfirmationStatus.ERROR, exc.message)
            return ResumeResult(op, record.tx_hash, ConfirmationStatus.ERROR, False, exc.message)
        except httpx.HTTPError as exc:
            logger.info("Pending %s %s: server unreachable (%s); kept", op.value, record.tx_hash, exc)
            self._set_state(op, ConfirmationStatus.ERROR, str(exc))
            return ResumeResult(op, record.tx_hash, ConfirmationStatus.ERROR, False, str(exc))

        cleared = self.ledger.clear_pending(op, expected_tx_hash=record.tx_hash)
        self._set_state(op, ConfirmationStatus.SUCCESS, result=result)
        return ResumeResult(op, record.tx_hash, ConfirmationStatus.SUCCESS, cleared, result=result)

    async def resume_all(self) -> list[ResumeResult]:
        """Re-drive every non-stale ledger record, one at a time."""
        results = []
        for record in self.ledger.get_all_pending():
            if record.operation.requires_session and not self.client.has_token:
                logger.info("Skipping pending %s: no session token", record.operation.value)
                results.append(
                    ResumeResult(record.operation, record.tx_hash, ConfirmationStatus.IDLE, False, "Auth required")
                )
                continue
            results.append(await self.confirm_pending(record))
        return results

    async def drain(self) -> None:
        """Wait for in-flight background confirmations."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
