"""Deposit/withdraw orchestration: submit, confirm, record, refresh."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator

from ..errors import ChainReadError, InvalidAmount, PersistError, SubmissionError, SubmissionStage
from ..interfaces.ledger import DealLedger
from ..interfaces.notifier import Notifier
from ..ledger.outbox import Outbox, OutboxEntry, OutboxStatus
from ..models import (
    DealRecord,
    DealType,
    Deposit,
    LenderIdentity,
    LenderPosition,
    Operation,
    OperationResult,
    Outcome,
    Receipt,
    Withdraw,
)
from .chain_reader import ChainStateReader
from .submitter import TransactionSubmitter

logger = logging.getLogger(__name__)


class UserLocks:
    """One asyncio.Lock per user id, for a single-process deployment."""

    def __init__(self) -> None:
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        async with self._locks[user_id]:
            yield

    def locked(self, user_id: int) -> bool:
        return user_id in self._locks and self._locks[user_id].locked()


class PositionReconciler:
    """Runs deposit and withdraw flows so the ledger only records settled deals.

    For a given user, flows are serialized from the pre-submission snapshot
    through the ledger append.
    """

    def __init__(
        self,
        submitter: TransactionSubmitter,
        ledger: DealLedger,
        reader: ChainStateReader,
        outbox: Outbox,
        notifiers: list[Notifier] | None = None,
        locks: UserLocks | None = None,
    ) -> None:
        self._submitter = submitter
        self._ledger = ledger
        self._reader = reader
        self._outbox = outbox
        self._notifiers = list(notifiers or [])
        self._locks = locks or UserLocks()

    @property
    def locks(self) -> UserLocks:
        return self._locks

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------

    async def deposit(self, identity: LenderIdentity, amount: int) -> OperationResult:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(f"Deposit amount must be a positive integer, got {amount!r}")

        async with self._locks.hold(identity.user_id):
            return await self._settle(
                identity, Deposit(amount), DealType.DEPOSIT, amount, 0
            )

    async def withdraw(self, identity: LenderIdentity) -> OperationResult:
        async with self._locks.hold(identity.user_id):
            # The contract empties the position, so the amount must be taken
            # from a snapshot before the transaction is sent.
            snapshot = await self._snapshot(identity)
            if snapshot is None:
                return OperationResult(
                    Outcome.NOT_SENT,
                    "Withdraw not sent: position could not be read from chain",
                )
            if snapshot.total == 0:
                return OperationResult(
                    Outcome.NOTHING_TO_WITHDRAW,
                    "Nothing to withdraw: position is empty",
                    position=snapshot,
                )
            return await self._settle(
                identity,
                Withdraw(),
                DealType.WITHDRAW,
                snapshot.total,
                snapshot.interest_earned,
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _snapshot(self, identity: LenderIdentity) -> LenderPosition | None:
        try:
            return await self._reader.refresh(identity)
        except ChainReadError:
            cached = self._reader.cache.get(identity.user_id)
            if cached is not None:
                logger.warning(
                    "Using cached position from %s for user %s",
                    cached.read_at.isoformat(),
                    identity.user_id,
                )
            return cached

    async def _settle(
        self,
        identity: LenderIdentity,
        operation: Operation,
        deal_type: DealType,
        amount: int,
        interest_gained: int,
    ) -> OperationResult:
        label = deal_type.value.capitalize()

        try:
            entry = self._outbox.open(identity, deal_type, amount, interest_gained)
        except PersistError as e:
            return OperationResult(Outcome.NOT_SENT, f"{label} not sent: {e}")

        try:
            tx_hash = await self._submitter.send(operation)
        except SubmissionError as e:
            return self._submission_failed(label, entry, e)

        entry = self._advance(entry, OutboxStatus.SUBMITTED, tx_hash=tx_hash)

        try:
            receipt = await self._submitter.wait(tx_hash)
        except SubmissionError as e:
            return self._submission_failed(label, entry, e)
        except asyncio.CancelledError:
            logger.warning(
                "%s wait cancelled; tx %s stays in the outbox for reconciliation",
                label,
                tx_hash,
            )
            raise

        entry = self._advance(entry, OutboxStatus.CONFIRMED)
        return await self._record(label, entry, receipt)

    async def _record(
        self, label: str, entry: OutboxEntry, receipt: Receipt
    ) -> OperationResult:
        record = DealRecord(
            deal_type=entry.deal_type,
            amount=entry.amount,
            interest_gained=entry.interest_gained,
            timestamp=datetime.now(timezone.utc),
            user_id=entry.user_id,
        )

        try:
            record_id = await self._ledger.append(record)
        except PersistError as e:
            message = (
                f"{label} succeeded on chain (tx {receipt.tx_hash}) but the deal "
                f"record was not saved: {e}. Flagged for reconciliation."
            )
            logger.error(message)
            await self._alert(message, subject="Ledger out of sync")
            return OperationResult(
                Outcome.LEDGER_FAILED,
                message,
                receipt=receipt,
                position=await self._refresh_after(entry),
            )

        record = replace(record, record_id=record_id)
        self._advance(entry, OutboxStatus.SETTLED, record_id=record_id)

        return OperationResult(
            Outcome.SETTLED,
            f"{label} of {record.amount} wei settled in tx {receipt.tx_hash}",
            receipt=receipt,
            record=record,
            position=await self._refresh_after(entry),
        )

    def _submission_failed(
        self, label: str, entry: OutboxEntry, error: SubmissionError
    ) -> OperationResult:
        if error.stage is SubmissionStage.UNCONFIRMED:
            # outcome unknown; leave the entry open for the sweep
            if entry.deal_type is DealType.WITHDRAW:
                self._reader.cache.discard(entry.user_id)
            logger.warning("%s unconfirmed: %s", label, error.cause)
            return OperationResult(
                Outcome.UNCONFIRMED,
                f"{label} status unknown, will be reconciled: {error.cause}",
            )

        self._advance(entry, OutboxStatus.FAILED, error=error.cause)
        if error.stage is SubmissionStage.REVERTED:
            logger.warning("%s reverted: %s", label, error.cause)
            return OperationResult(
                Outcome.REVERTED, f"{label} was sent but reverted: {error.cause}"
            )

        logger.warning("%s not sent: %s", label, error.cause)
        return OperationResult(Outcome.NOT_SENT, f"{label} not sent: {error.cause}")

    def _advance(
        self, entry: OutboxEntry, status: OutboxStatus, **changes: object
    ) -> OutboxEntry:
        try:
            return self._outbox.advance(entry, status, **changes)
        except PersistError as e:
            logger.error("Outbox update to %s failed for %s: %s", status.value, entry.id, e)
            return entry

    async def _refresh_after(self, entry: OutboxEntry) -> LenderPosition | None:
        try:
            return await self._reader.refresh(entry.identity)
        except ChainReadError:
            if entry.deal_type is DealType.WITHDRAW:
                # the cached balance was paid out; never withdraw against it again
                self._reader.cache.discard(entry.user_id)
                return None
            # next scheduled refresh will catch up
            return self._reader.cache.get(entry.user_id)

    async def _alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)
