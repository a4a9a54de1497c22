"""Reads a lender's position and the global rate from chain."""
from __future__ import annotations

import asyncio
import logging

from ..chains.evm.contract import EscrowContracts
from ..errors import ChainReadError
from ..models import LenderIdentity, LenderPosition
from .position_cache import PositionCache

logger = logging.getLogger(__name__)


class ChainStateReader:
    """Builds LenderPosition snapshots and keeps the position cache current."""

    def __init__(self, contracts: EscrowContracts, cache: PositionCache) -> None:
        self._contracts = contracts
        self._cache = cache

    @property
    def cache(self) -> PositionCache:
        return self._cache

    async def read(self, identity: LenderIdentity) -> LenderPosition:
        """Query deposit, interest and rate.

        The three reads are independent calls and may straddle a block, so
        no consistency between them is assumed.
        """
        try:
            deposit, interest, rate = await asyncio.gather(
                self._contracts.position_of(identity.address),
                self._contracts.interest_of(identity.address),
                self._contracts.interest_rate(),
            )
        except Exception as e:
            raise ChainReadError(
                f"Failed to read position for {identity.address}: {e}"
            ) from e

        for name, value in (("deposit", deposit), ("interest", interest), ("rate", rate)):
            if not isinstance(value, int) or value < 0:
                raise ChainReadError(f"Invalid {name} value from chain: {value!r}")

        return LenderPosition(
            user_id=identity.user_id,
            deposit_amount=deposit,
            interest_earned=interest,
            interest_rate_bps=rate,
        )

    async def refresh(self, identity: LenderIdentity) -> LenderPosition:
        """Read and replace the cached snapshot.

        On ChainReadError the previous snapshot stays cached and the error
        propagates.
        """
        try:
            position = await self.read(identity)
        except ChainReadError as e:
            logger.warning("Position refresh failed for user %s: %s", identity.user_id, e)
            raise
        logger.debug(
            "Position user=%s deposit=%d interest=%d rate=%d",
            identity.user_id,
            position.deposit_amount,
            position.interest_earned,
            position.interest_rate_bps,
        )
        return self._cache.put(position)
