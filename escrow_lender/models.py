"""Data models. All frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LenderIdentity:
    """Session user paired with the wallet address acting for it."""

    user_id: int
    address: str


@dataclass(frozen=True)
class LenderPosition:
    """Snapshot of a lender's on-chain state, amounts in wei."""

    user_id: int
    deposit_amount: int
    interest_earned: int
    interest_rate_bps: int
    read_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.deposit_amount < 0 or self.interest_earned < 0:
            raise ValueError("Position amounts must be non-negative")

    @property
    def total(self) -> int:
        """Principal plus accrued interest, i.e. what a withdrawal pays out."""
        return self.deposit_amount + self.interest_earned

    @property
    def rate_percent(self) -> float:
        # the contract stores the rate multiplied by 100
        return self.interest_rate_bps / 100


class DealType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class DealRecord:
    """A settled deposit or withdrawal as stored in the deal ledger."""

    deal_type: DealType
    amount: int
    interest_gained: int
    timestamp: datetime
    user_id: int
    record_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Body for ``POST /deals``."""
        return {
            "type": self.deal_type.value,
            "amount": self.amount,
            "interestGained": self.interest_gained,
            "dateTime": self.timestamp.isoformat(),
            "userId": self.user_id,
        }

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> "DealRecord":
        timestamp = datetime.fromisoformat(str(raw["dateTime"]).replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        record_id = raw.get("id")
        return cls(
            deal_type=DealType(str(raw["type"]).lower()),
            amount=int(raw["amount"]),
            interest_gained=int(raw.get("interestGained", 0)),
            timestamp=timestamp,
            user_id=int(raw["userId"]),
            record_id=str(record_id) if record_id is not None else None,
        )


@dataclass(frozen=True)
class Receipt:
    """Terminal status of a mined transaction."""

    success: bool
    tx_hash: str
    status: int = 1
    block_number: int | None = None


# ---------------------------------------------------------------------------
# Operations understood by the transaction submitter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Deposit:
    amount: int


@dataclass(frozen=True)
class Withdraw:
    pass


@dataclass(frozen=True)
class ChangeRate:
    new_rate_bps: int


Operation = Union[Deposit, Withdraw, ChangeRate]


# ---------------------------------------------------------------------------
# Reconciler results
# ---------------------------------------------------------------------------


class Outcome(str, Enum):
    SETTLED = "settled"
    NOTHING_TO_WITHDRAW = "nothing_to_withdraw"
    NOT_SENT = "not_sent"
    REVERTED = "reverted"
    UNCONFIRMED = "unconfirmed"
    LEDGER_FAILED = "ledger_failed"


@dataclass(frozen=True)
class OperationResult:
    """Typed result of a deposit or withdraw flow."""

    outcome: Outcome
    message: str
    receipt: Receipt | None = None
    record: DealRecord | None = None
    position: LenderPosition | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.SETTLED, Outcome.NOTHING_TO_WITHDRAW)

    @property
    def funds_moved(self) -> bool:
        """True when the chain state changed, whether or not the ledger caught up."""
        return self.outcome in (Outcome.SETTLED, Outcome.LEDGER_FAILED)
