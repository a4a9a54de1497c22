"""Admin-gated interest rate changes."""
from __future__ import annotations

import logging

from ..errors import InvalidAmount, Unauthorized
from ..models import ChangeRate, Receipt
from .submitter import TransactionSubmitter

logger = logging.getLogger(__name__)


class AdminRateController:
    """Lets the configured admin address change the global lender rate."""

    def __init__(self, admin_address: str, submitter: TransactionSubmitter) -> None:
        self._admin_address = admin_address.strip().lower()
        self._submitter = submitter

    def is_admin(self, address: str | None) -> bool:
        if not address or not self._admin_address:
            return False
        return address.strip().lower() == self._admin_address

    async def change_rate(self, caller_address: str, new_rate_bps: int) -> Receipt:
        """Submit ``changeLendersInterestRate``; rate is the percentage times 100."""
        if not self.is_admin(caller_address):
            logger.warning("Rejected rate change from non-admin %s", caller_address)
            raise Unauthorized(f"{caller_address} is not the admin address")
        if isinstance(new_rate_bps, bool) or not isinstance(new_rate_bps, int) or new_rate_bps < 0:
            raise InvalidAmount(f"Interest rate must be a non-negative integer, got {new_rate_bps!r}")

        receipt = await self._submitter.submit(ChangeRate(new_rate_bps))
        logger.info("Interest rate changed to %d in tx %s", new_rate_bps, receipt.tx_hash)
        return receipt
