"""Error taxonomy.

``InvalidAmount`` and ``Unauthorized`` are raised before any side effect.
``ChainReadError`` is transient: the next scheduled refresh retries it.
``SubmissionError`` is terminal for one attempt and is never resubmitted
automatically. ``PersistError`` means the chain moved but the ledger did not,
which calls for a reconciliation pass rather than a resubmission.
"""
from __future__ import annotations

from enum import Enum


class EscrowLenderError(Exception):
    """Base class for all escrow-lender errors."""


class InvalidAmount(EscrowLenderError, ValueError):
    """An amount or rate failed validation."""


class Unauthorized(EscrowLenderError):
    """Caller is not allowed to perform the operation."""


class ChainReadError(EscrowLenderError):
    """Reading contract state failed or returned an unparseable value."""


class SubmissionStage(str, Enum):
    NOT_SENT = "not_sent"
    REVERTED = "reverted"
    UNCONFIRMED = "unconfirmed"


class SubmissionError(EscrowLenderError):
    """A transaction could not be sent, reverted, or was never confirmed."""

    def __init__(
        self,
        cause: str,
        stage: SubmissionStage = SubmissionStage.NOT_SENT,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(cause)
        self.cause = cause
        self.stage = stage
        self.tx_hash = tx_hash

    @property
    def broadcast(self) -> bool:
        """True when the transaction reached the network."""
        return self.tx_hash is not None


class LedgerError(EscrowLenderError):
    """Base class for deal ledger failures."""


class PersistError(LedgerError):
    """Appending a deal record failed."""


class LedgerReadError(LedgerError):
    """Listing deal records failed."""
