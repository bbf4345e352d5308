"""Local ledger of submitted-but-unconfirmed on-chain operations.

One record per operation type, persisted before the server is asked to confirm
so a crash or closed terminal never loses a transaction hash. The file is JSON:

    {"version": 1, "pending": {"publish": {...}, "review": {...}}}

Writes go to a temp file and are moved into place with ``os.replace``. A file
that cannot be parsed is renamed to ``<name>.corrupt`` and the ledger starts
empty. Records older than ``max_age`` are never returned.
"""

from __future__ import annotations

import enum
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

LEDGER_VERSION = 1
MAX_AGE_SECONDS = 24 * 60 * 60
DEFAULT_PATH = Path.home() / ".agentregistry" / "pending.json"


class OperationType(str, enum.Enum):
    PUBLISH = "publish"
    ENABLE_REVIEWS = "enable_reviews"
    REVIEW = "review"

    @property
    def requires_session(self) -> bool:
        # Reviews are authorized by the reviewer's own transaction.
        return self is not OperationType.REVIEW


@dataclass(frozen=True)
class PendingRecord:
    operation: OperationType
    tx_hash: str
    chain_id: int
    entity_id: str  # agent id, or review id for reviews
    created_at: float  # epoch seconds
    token_id: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["operation"] = self.operation.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> PendingRecord:
        return cls(
            operation=OperationType(data["operation"]),
            tx_hash=data["tx_hash"],
            chain_id=int(data["chain_id"]),
            entity_id=data["entity_id"],
            created_at=float(data["created_at"]),
            token_id=data.get("token_id"),
        )


class PendingLedger:
    """Thread-safe JSON ledger of pending operations.

    Writers in separate processes never collide on the temp file, but the last
    ``os.replace`` wins.
    """

    def __init__(
        self,
        path: str | os.PathLike | None = None,
        *,
        max_age: float = MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path) if path else DEFAULT_PATH
        self.max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()

    # --- storage ---

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if data.get("version") != LEDGER_VERSION or not isinstance(data.get("pending"), dict):
                raise ValueError(f"unsupported ledger layout (version={data.get('version')!r})")
            return data["pending"]
        except (ValueError, AttributeError) as exc:
            corrupt = self.path.with_suffix(self.path.suffix + ".corrupt")
            logger.warning("Pending ledger %s unreadable (%s); moved to %s", self.path, exc, corrupt)
            os.replace(self.path, corrupt)
            return {}

    def _write(self, pending: dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=self.path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            json.dump({"version": LEDGER_VERSION, "pending": pending}, tmp, indent=2)
        os.replace(tmp.name, self.path)

    def _is_stale(self, record: PendingRecord) -> bool:
        return self._clock() - record.created_at > self.max_age

    # --- operations ---

    def set_pending(
        self,
        operation: OperationType,
        tx_hash: str,
        chain_id: int,
        entity_id: str,
        token_id: str | None = None,
    ) -> PendingRecord:
        """Record (or replace) the pending transaction for ``operation``."""
        record = PendingRecord(
            operation=OperationType(operation),
            tx_hash=tx_hash.lower(),
            chain_id=chain_id,
            entity_id=entity_id,
            created_at=self._clock(),
            token_id=str(token_id) if token_id is not None else None,
        )
        with self._lock:
            pending = self._read()
            pending[record.operation.value] = record.to_dict()
            self._write(pending)
        logger.info("Pending %s recorded: tx=%s chain=%d", record.operation.value, record.tx_hash, chain_id)
        return record

    def get_pending(self, operation: OperationType) -> PendingRecord | None:
        """The record for ``operation``; a stale one is dropped and None returned."""
        key = OperationType(operation).value
        with self._lock:
            pending = self._read()
            raw = pending.get(key)
            if raw is None:
                return None
            try:
                record = PendingRecord.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping malformed pending %s: %r", key, raw)
                del pending[key]
                self._write(pending)
                return None
            if self._is_stale(record):
                logger.info("Dropping stale pending %s (tx %s)", key, record.tx_hash)
                del pending[key]
                self._write(pending)
                return None
            return record

    def get_all_pending(self) -> list[PendingRecord]:
        with self._lock:
            records = []
            for raw in self._read().values():
                try:
                    record = PendingRecord.from_dict(raw)
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed pending record: %r", raw)
                    continue
                if not self._is_stale(record):
                    records.append(record)
            return records

    def clear_pending(self, operation: OperationType, expected_tx_hash: str | None = None) -> bool:
        """Remove the record for ``operation``.

        With ``expected_tx_hash`` the record is only removed while it still
        holds that transaction, so a newer submission is never dropped by an
        older attempt finishing. Returns whether a record was removed.
        """
        key = OperationType(operation).value
        with self._lock:
            pending = self._read()
            raw = pending.get(key)
            if raw is None:
                return False
            if expected_tx_hash is not None and (
                not isinstance(raw, dict)
                or str(raw.get("tx_hash", "")).lower() != expected_tx_hash.lower()
            ):
                logger.info(
                    "Pending %s now holds tx %s; keeping it", key,
                    raw.get("tx_hash") if isinstance(raw, dict) else raw,
                )
                return False
            del pending[key]
            self._write(pending)
        logger.info("Pending %s cleared", key)
        return True
