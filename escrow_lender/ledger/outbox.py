"""Durable outbox of escrow operations awaiting settlement in the ledger.

Every state change is appended as one JSON line; the latest line for an id
wins. An entry is opened before the transaction is sent, so a crash or a
cancelled wait always leaves a trace the reconciliation sweep can act on.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import PersistError
from ..models import DealType, LenderIdentity

logger = logging.getLogger(__name__)


class OutboxStatus(str, Enum):
    PENDING = "pending"  # opened, broadcast not yet known
    SUBMITTED = "submitted"  # tx hash known, no receipt yet
    CONFIRMED = "confirmed"  # mined successfully, ledger append outstanding
    SETTLED = "settled"
    FAILED = "failed"


_OPEN_STATUSES = (OutboxStatus.PENDING, OutboxStatus.SUBMITTED, OutboxStatus.CONFIRMED)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class OutboxEntry:
    id: str
    user_id: int
    address: str
    deal_type: DealType
    amount: int
    interest_gained: int
    status: OutboxStatus = OutboxStatus.PENDING
    tx_hash: str | None = None
    record_id: str | None = None
    error: str | None = None
    updated_at: str = field(default_factory=_now)

    @property
    def is_open(self) -> bool:
        return self.status in _OPEN_STATUSES

    @property
    def identity(self) -> LenderIdentity:
        return LenderIdentity(user_id=self.user_id, address=self.address)

    def to_json(self) -> dict[str, Any]:
        data = asdict(self)
        data["deal_type"] = self.deal_type.value
        data["status"] = self.status.value
        return data

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "OutboxEntry":
        data = dict(raw)
        data["deal_type"] = DealType(data["deal_type"])
        data["status"] = OutboxStatus(data["status"])
        return cls(**data)


class Outbox:
    """JSON-lines outbox file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _write(self, entry: OutboxEntry) -> OutboxEntry:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_json(), separators=(",", ":")) + "\n")
        except OSError as e:
            raise PersistError(f"Could not write outbox {self.path}: {e}") from e
        return entry

    def open(
        self,
        identity: LenderIdentity,
        deal_type: DealType,
        amount: int,
        interest_gained: int,
    ) -> OutboxEntry:
        """Record an operation that is about to be sent."""
        entry = OutboxEntry(
            id=uuid.uuid4().hex,
            user_id=identity.user_id,
            address=identity.address,
            deal_type=deal_type,
            amount=amount,
            interest_gained=interest_gained,
        )
        return self._write(entry)

    def advance(
        self, entry: OutboxEntry, status: OutboxStatus, **changes: Any
    ) -> OutboxEntry:
        updated = replace(entry, status=status, updated_at=_now(), **changes)
        logger.debug("Outbox %s: %s -> %s", entry.id, entry.status.value, status.value)
        return self._write(updated)

    def entries(self) -> list[OutboxEntry]:
        """Latest state of every entry, in the order entries were opened."""
        latest: dict[str, OutboxEntry] = {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = OutboxEntry.from_json(json.loads(line))
                    except (ValueError, KeyError, TypeError) as e:
                        logger.error("Skipping corrupt outbox line %d: %s", lineno, e)
                        continue
                    latest[entry.id] = entry
        except FileNotFoundError:
            return []
        return list(latest.values())

    def get(self, entry_id: str) -> OutboxEntry | None:
        for entry in self.entries():
            if entry.id == entry_id:
                return entry
        return None

    def unsettled(self) -> list[OutboxEntry]:
        return [e for e in self.entries() if e.is_open]
