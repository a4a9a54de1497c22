"""Reconciliation sweep over outbox entries that never reached the ledger."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..errors import LedgerError, PersistError
from ..interfaces.ledger import DealLedger
from ..interfaces.notifier import Notifier
from ..ledger.outbox import Outbox, OutboxEntry, OutboxStatus
from ..models import DealRecord, DealType
from .reconciler import UserLocks
from .submitter import TransactionSubmitter

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    settled: list[OutboxEntry] = field(default_factory=list)
    failed: list[OutboxEntry] = field(default_factory=list)
    still_pending: list[OutboxEntry] = field(default_factory=list)
    needs_review: list[OutboxEntry] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.still_pending or self.needs_review)


class ReconciliationSweeper:
    """Replays the outbox against receipts and the ledger.

    * ``submitted``: poll the receipt once; success is recorded, a revert is
      closed as failed, no receipt stays pending.
    * ``confirmed``: the ledger append is retried, unless a matching row was
      already written by a flow that could not mark its entry settled.
    * ``pending``: the broadcast state is unknown and there is no hash to
      look up, so it is left for an admin to resolve by hand.

    Nothing is ever resubmitted to the chain.
    """

    def __init__(
        self,
        outbox: Outbox,
        submitter: TransactionSubmitter,
        ledger: DealLedger,
        locks: UserLocks,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._outbox = outbox
        self._submitter = submitter
        self._ledger = ledger
        self._locks = locks
        self._notifiers = list(notifiers or [])

    async def sweep(self) -> SweepReport:
        report = SweepReport()

        for entry in self._outbox.unsettled():
            # an in-flight flow for this user owns its entry until it returns
            async with self._locks.hold(entry.user_id):
                current = self._outbox.get(entry.id)
                if current is None or not current.is_open:
                    continue
                await self._process(current, report)

        logger.info(
            "Sweep done: %d settled, %d failed, %d pending, %d need review",
            len(report.settled),
            len(report.failed),
            len(report.still_pending),
            len(report.needs_review),
        )
        if report.needs_review:
            ids = ", ".join(e.id for e in report.needs_review)
            await self._alert(
                f"{len(report.needs_review)} outbox entries have an unknown "
                f"broadcast state and need manual review: {ids}",
                subject="Manual reconciliation required",
            )
        return report

    async def _process(self, entry: OutboxEntry, report: SweepReport) -> None:
        if entry.status is OutboxStatus.PENDING:
            report.needs_review.append(entry)
            return

        # ledger rows for this entry can only be newer than its last outbox write
        since = entry.updated_at

        if entry.status is OutboxStatus.SUBMITTED:
            if not entry.tx_hash:
                logger.error("Outbox entry %s is submitted without a tx hash", entry.id)
                report.needs_review.append(entry)
                return
            confirmed = await self._check_receipt(entry, report)
            if confirmed is None:
                return
            entry = confirmed

        await self._append(entry, since, report)

    async def _check_receipt(
        self, entry: OutboxEntry, report: SweepReport
    ) -> OutboxEntry | None:
        try:
            receipt = await self._submitter.get_receipt(entry.tx_hash)
        except Exception as e:
            logger.warning("Receipt lookup for %s failed: %s", entry.tx_hash, e)
            report.still_pending.append(entry)
            return None

        if receipt is None:
            report.still_pending.append(entry)
            return None
        if not receipt.success:
            failed = self._advance(
                entry, OutboxStatus.FAILED, error=f"reverted (status {receipt.status})"
            )
            if failed is None:
                report.still_pending.append(entry)
            else:
                report.failed.append(failed)
            return None
        # the receipt is authoritative; carry on even if the write is lost
        return self._advance(entry, OutboxStatus.CONFIRMED) or entry

    async def _already_recorded(self, entry: OutboxEntry, since: str) -> bool:
        """True if the ledger holds a row for ``entry`` not owned by another settled entry.

        Covers a flow that appended the deal but could not mark its entry
        settled. Rows are matched on type and amounts written at or after
        ``since``.
        """
        cutoff = datetime.fromisoformat(since)

        def same_deal(deal_type: DealType, amount: int, interest: int) -> bool:
            return (
                deal_type is entry.deal_type
                and amount == entry.amount
                and interest == entry.interest_gained
            )

        records = await self._ledger.list_by_user(entry.user_id)
        recorded = sum(
            1
            for r in records
            if r.timestamp >= cutoff and same_deal(r.deal_type, r.amount, r.interest_gained)
        )
        if not recorded:
            return False

        owned = sum(
            1
            for e in self._outbox.entries()
            if e.id != entry.id
            and e.user_id == entry.user_id
            and e.status is OutboxStatus.SETTLED
            and datetime.fromisoformat(e.updated_at) >= cutoff
            and same_deal(e.deal_type, e.amount, e.interest_gained)
        )
        return recorded > owned

    async def _append(self, entry: OutboxEntry, since: str, report: SweepReport) -> None:
        try:
            recorded = await self._already_recorded(entry, since)
        except LedgerError as e:
            logger.error("Could not check ledger for %s: %s", entry.id, e)
            report.still_pending.append(entry)
            return

        record_id: str | None = None
        if recorded:
            logger.warning(
                "Deal for outbox entry %s is already in the ledger; marking settled",
                entry.id,
            )
        else:
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
                logger.error("Ledger still unavailable for %s: %s", entry.id, e)
                report.still_pending.append(entry)
                return

        settled = self._advance(entry, OutboxStatus.SETTLED, record_id=record_id)
        if settled is None:
            # the next sweep finds the ledger row and only retries this write
            report.still_pending.append(entry)
            return
        report.settled.append(settled)
        logger.info(
            "Recovered %s deal for user %s from tx %s",
            entry.deal_type.value,
            entry.user_id,
            entry.tx_hash,
        )

    def _advance(
        self, entry: OutboxEntry, status: OutboxStatus, **changes: object
    ) -> OutboxEntry | None:
        try:
            return self._outbox.advance(entry, status, **changes)
        except PersistError as e:
            logger.error("Outbox update to %s failed for %s: %s", status.value, entry.id, e)
            return None

    async def _alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)
