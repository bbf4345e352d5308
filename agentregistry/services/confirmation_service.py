"""Confirmation coordinator: binds a claimed transaction hash to an entity exactly once.

Per (entity, operation) the state is ``unconfirmed`` until a transaction is
accepted, then ``confirmed{tx_hash, chain_id, result_id}`` forever:

1. Idempotency: already confirmed with the same hash -> replay; with another
   hash -> conflict.
2. Chain read: receipt via the retry executor. A reverted transaction is
   terminal. When no receipt can be had, a client-supplied id is accepted only
   if the node at least knows the transaction (logged for audit); otherwise
   the caller is told to come back later.
3. Identifier: from the receipt logs, else the client-supplied id, else error.
4. Commit: conditional UPDATE ... WHERE state = 'unconfirmed'. Losing that
   race re-reads the row and answers replay or conflict.

No lock is held across the chain read; steps 1 and 4 are the only guards
against concurrent duplicates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agentregistry.config import settings
from agentregistry.core.exceptions import (
    ChainUnavailableError,
    ConfirmationConflictError,
    IdentifierNotFoundError,
    InternalError,
    TransactionFailedError,
    UnsupportedChainError,
)
from agentregistry.models.agent import Agent, Review
from agentregistry.models.confirmation import (
    CONFIRMED,
    UNCONFIRMED,
    ChainConfirmation,
    Operation,
)
from agentregistry.services.log_interpreter import LogInterpreter, log_interpreter
from agentregistry.services.network_service import NetworkConfig, NetworkConfigCache
from agentregistry.services.retry import with_retry
from agentregistry.services.rpc_reader import (
    CHAIN_READ_ERRORS,
    RpcReader,
    TransactionNotFoundError,
    TransactionReceipt,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationPolicy:
    registry: str  # "identity" | "reputation"
    requires_identifier: bool
    receipt_timeout: float


def default_policies() -> dict[Operation, OperationPolicy]:
    return {
        Operation.PUBLISH: OperationPolicy(
            registry="identity",
            requires_identifier=True,
            receipt_timeout=settings.publish_receipt_timeout_seconds,
        ),
        Operation.ENABLE_REVIEWS: OperationPolicy(
            registry="identity",
            requires_identifier=False,
            receipt_timeout=settings.enable_reviews_receipt_timeout_seconds,
        ),
        Operation.SUBMIT_REVIEW: OperationPolicy(
            registry="reputation",
            requires_identifier=False,
            receipt_timeout=settings.review_receipt_timeout_seconds,
        ),
    }


@dataclass(frozen=True)
class ConfirmationOutcome:
    status: str  # "success" | "idempotent"
    operation: Operation
    entity_id: str
    tx_hash: str
    chain_id: int
    result_id: str | None
    explorer_url: str | None = None

    @property
    def idempotent(self) -> bool:
        return self.status == "idempotent"


def default_reader_factory(network: NetworkConfig) -> RpcReader:
    return RpcReader(
        network.rpc_url,
        request_timeout=settings.rpc_request_timeout_seconds,
        poll_interval=settings.receipt_poll_interval_seconds,
    )


def _is_token_id(value: str) -> bool:
    # Token ids start at 1; zero or zero-padded values are never minted ids.
    return value.isdecimal() and value.isascii() and not value.startswith("0")


def _entity_effects(operation: Operation, entity_id: str, now: datetime) -> list:
    """Entity updates written in the same transaction as the confirmation."""
    if operation is Operation.PUBLISH:
        return [
            update(Agent)
            .where(Agent.id == entity_id)
            .values(status="live", published_at=now, updated_at=now)
        ]
    if operation is Operation.ENABLE_REVIEWS:
        return [
            update(Agent)
            .where(Agent.id == entity_id)
            .values(reviews_enabled_at=now, updated_at=now)
        ]
    return [
        update(Review)
        .where(Review.id == entity_id)
        .values(status="confirmed", confirmed_at=now)
    ]


class ConfirmationService:
    """Owns the network cache, the log interpreter and the chain-read policy."""

    def __init__(
        self,
        *,
        networks: NetworkConfigCache | None = None,
        interpreter: LogInterpreter | None = None,
        reader_factory: Callable[[NetworkConfig], RpcReader] | None = None,
        policies: dict[Operation, OperationPolicy] | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        deadline: float | None = None,
        confirmations: int | None = None,
        sleep=asyncio.sleep,
    ):
        self.networks = networks or NetworkConfigCache()
        self.interpreter = interpreter or log_interpreter
        self.reader_factory = reader_factory or default_reader_factory
        self.policies = policies or default_policies()
        self.max_attempts = max_attempts or settings.confirm_max_attempts
        self.base_delay = settings.confirm_base_delay_seconds if base_delay is None else base_delay
        self.deadline = deadline or settings.confirm_deadline_seconds
        self.confirmations = confirmations or settings.receipt_confirmations
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_record(
        self, db: AsyncSession, entity_id: str, operation: Operation
    ) -> ChainConfirmation | None:
        result = await db.execute(
            select(ChainConfirmation)
            .where(
                ChainConfirmation.entity_id == entity_id,
                ChainConfirmation.operation == operation.value,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_record(
        self, db: AsyncSession, entity_id: str, operation: Operation
    ) -> ChainConfirmation:
        record = await self.get_record(db, entity_id, operation)
        if record is not None:
            return record

        db.add(ChainConfirmation(entity_id=entity_id, operation=operation.value, state=UNCONFIRMED))
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent request created it first.
            await db.rollback()
        return await self.get_record(db, entity_id, operation)

    async def list_records(self, db: AsyncSession, entity_id: str) -> list[ChainConfirmation]:
        result = await db.execute(
            select(ChainConfirmation)
            .where(ChainConfirmation.entity_id == entity_id)
            .order_by(ChainConfirmation.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # ConfirmOperation
    # ------------------------------------------------------------------

    async def confirm(
        self,
        db: AsyncSession,
        *,
        entity_id: str,
        operation: Operation,
        tx_hash: str,
        chain_id: int,
        client_result_id: str | None = None,
    ) -> ConfirmationOutcome:
        tx_hash = tx_hash.lower()
        policy = self.policies[operation]
        if client_result_id is not None and not _is_token_id(client_result_id):
            raise IdentifierNotFoundError(f"Invalid client-supplied token ID: {client_result_id!r}")

        record = await self.get_or_create_record(db, entity_id, operation)
        replay = await self._check_existing(db, record, operation, tx_hash)
        if replay is not None:
            return replay

        network = await self.networks.get(db, chain_id)
        registry_address = self._registry_address(network, policy)

        async with self.reader_factory(network) as reader:
            result_id, source = await self._resolve_result(
                reader,
                operation=operation,
                policy=policy,
                entity_id=entity_id,
                tx_hash=tx_hash,
                chain_id=chain_id,
                registry_address=registry_address,
                client_result_id=client_result_id,
            )

        committed = await self._commit(
            db,
            record.id,
            entity_id=entity_id,
            operation=operation,
            tx_hash=tx_hash,
            chain_id=chain_id,
            result_id=result_id,
            result_source=source,
        )
        if not committed:
            # Lost the conditional write to a concurrent request.
            await db.refresh(record)
            logger.warning(
                "Confirmation race lost for %s %s (tx %s); stored tx is %s",
                operation.value, entity_id, tx_hash, record.tx_hash,
            )
            replay = await self._check_existing(db, record, operation, tx_hash)
            if replay is not None:
                return replay
            raise InternalError("Confirmation state changed during commit")

        logger.info(
            "Confirmed %s for %s: tx=%s chain=%d result=%s (%s)",
            operation.value, entity_id, tx_hash, chain_id, result_id, source,
        )
        return ConfirmationOutcome(
            status="success",
            operation=operation,
            entity_id=entity_id,
            tx_hash=tx_hash,
            chain_id=chain_id,
            result_id=result_id,
            explorer_url=network.explorer_tx_url(tx_hash),
        )

    @staticmethod
    def _registry_address(network: NetworkConfig, policy: OperationPolicy) -> str:
        if policy.registry == "identity":
            address = network.identity_registry_address
        else:
            address = network.reputation_registry_address
        if not address:
            raise UnsupportedChainError(
                f"{policy.registry.capitalize()} registry not deployed on network {network.chain_id}"
            )
        return address

    async def explorer_url(self, db: AsyncSession, chain_id: int, tx_hash: str) -> str | None:
        """Explorer link for a stored transaction; None once its network is gone."""
        try:
            network = await self.networks.get(db, chain_id)
        except UnsupportedChainError:
            return None
        return network.explorer_tx_url(tx_hash)

    async def _check_existing(
        self,
        db: AsyncSession,
        record: ChainConfirmation,
        operation: Operation,
        tx_hash: str,
    ) -> ConfirmationOutcome | None:
        """Step 1. Runs before any network lookup so a replay never depends on current config."""
        if record.state != CONFIRMED:
            return None
        if record.tx_hash == tx_hash:
            logger.info("Idempotent replay of %s for %s (tx %s)", operation.value, record.entity_id, tx_hash)
            return ConfirmationOutcome(
                status="idempotent",
                operation=operation,
                entity_id=record.entity_id,
                tx_hash=record.tx_hash,
                chain_id=record.chain_id,
                result_id=record.result_id,
                explorer_url=await self.explorer_url(db, record.chain_id, record.tx_hash),
            )
        logger.warning(
            "Conflict: %s for %s already confirmed with %s, rejected %s",
            operation.value, record.entity_id, record.tx_hash, tx_hash,
        )
        raise ConfirmationConflictError(
            f"Already confirmed with a different transaction ({operation.value})"
        )

    async def _read_receipt(
        self, reader: RpcReader, tx_hash: str, policy: OperationPolicy
    ) -> TransactionReceipt:
        return await asyncio.wait_for(
            with_retry(
                lambda: reader.get_receipt(
                    tx_hash,
                    confirmations=self.confirmations,
                    timeout=policy.receipt_timeout,
                ),
                self.max_attempts,
                self.base_delay,
                retry_on=CHAIN_READ_ERRORS,
                sleep=self._sleep,
                label=f"receipt {tx_hash}",
            ),
            timeout=self.deadline,
        )

    async def _resolve_result(
        self,
        reader: RpcReader,
        *,
        operation: Operation,
        policy: OperationPolicy,
        entity_id: str,
        tx_hash: str,
        chain_id: int,
        registry_address: str,
        client_result_id: str | None,
    ) -> tuple[str | None, str]:
        """Return (result_id, result_source) or raise the terminal/transient error."""
        try:
            receipt = await self._read_receipt(reader, tx_hash, policy)
        except CHAIN_READ_ERRORS as exc:
            logger.warning("Receipt for %s on chain %d unavailable: %s", tx_hash, chain_id, exc)
            receipt = None

        if receipt is None:
            if client_result_id is None:
                raise ChainUnavailableError(
                    "Transaction not yet confirmed. Please try again in a few moments."
                )
            await self._verify_transaction_exists(reader, tx_hash)
            logger.warning(
                "AUDIT client-supplied id accepted without receipt: operation=%s entity=%s "
                "tx=%s chain=%d claimed_id=%s",
                operation.value, entity_id, tx_hash, chain_id, client_result_id,
            )
            return client_result_id, "client"

        if not receipt.succeeded:
            logger.info("Transaction %s reverted on chain %d", tx_hash, chain_id)
            raise TransactionFailedError()

        if not policy.requires_identifier:
            return None, "receipt"

        found = self.interpreter.extract_identifier(receipt.logs, contract_address=registry_address)
        if found is not None:
            if client_result_id is not None and client_result_id != str(found):
                logger.warning(
                    "Client claimed id %s for %s but logs of %s say %d; using logs",
                    client_result_id, entity_id, tx_hash, found,
                )
            return str(found), "logs"

        if client_result_id is not None:
            logger.warning(
                "AUDIT client-supplied id accepted, no decodable log: operation=%s entity=%s "
                "tx=%s chain=%d claimed_id=%s",
                operation.value, entity_id, tx_hash, chain_id, client_result_id,
            )
            return client_result_id, "client"

        raise IdentifierNotFoundError()

    @staticmethod
    async def _verify_transaction_exists(reader: RpcReader, tx_hash: str) -> None:
        try:
            await reader.get_transaction(tx_hash)
        except (TransactionNotFoundError, *CHAIN_READ_ERRORS) as exc:
            logger.warning("Could not verify transaction %s exists: %s", tx_hash, exc)
            raise ChainUnavailableError(
                "Could not verify transaction. Please try again in a few moments."
            )

    async def _commit(
        self,
        db: AsyncSession,
        record_id: str,
        *,
        entity_id: str,
        operation: Operation,
        tx_hash: str,
        chain_id: int,
        result_id: str | None,
        result_source: str,
    ) -> bool:
        """Conditional unconfirmed -> confirmed write. False when another request won.

        Takes plain ids: a rollback expires every loaded instance.
        """
        now = datetime.now(timezone.utc)
        try:
            result = await db.execute(
                update(ChainConfirmation)
                .where(
                    ChainConfirmation.id == record_id,
                    ChainConfirmation.state == UNCONFIRMED,
                )
                .values(
                    state=CONFIRMED,
                    tx_hash=tx_hash,
                    chain_id=chain_id,
                    result_id=result_id,
                    result_source=result_source,
                    confirmed_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                return False

            for stmt in _entity_effects(operation, entity_id, now):
                await db.execute(stmt.execution_options(synchronize_session=False))
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("Transaction %s already backs another %s confirmation", tx_hash, operation.value)
            raise ConfirmationConflictError(
                "Transaction already used to confirm a different record"
            )
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Failed to store %s confirmation for %s", operation.value, entity_id)
            raise InternalError("Failed to update confirmation record")
        return True


# Singleton
confirmation_service = ConfirmationService()


def get_confirmation_service() -> ConfirmationService:
    """FastAPI dependency; tests override it with a service wired to a fake chain."""
    return confirmation_service
