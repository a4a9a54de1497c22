"""Periodic position refresh for an active lender session."""
from __future__ import annotations

import asyncio
import logging

from ..models import LenderIdentity
from .chain_reader import ChainStateReader

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Re-reads the lender position every ``interval`` seconds until stopped.

    A tick may race an in-flight deposit or withdraw and briefly cache stale
    data; the following tick corrects it.
    """

    def __init__(
        self,
        reader: ChainStateReader,
        identity: LenderIdentity,
        interval: float = 10.0,
    ) -> None:
        self._reader = reader
        self._identity = identity
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        logger.info(
            "Refreshing position for user %s every %.0fs",
            self._identity.user_id,
            self._interval,
        )
        while True:
            try:
                await self._reader.refresh(self._identity)
            except Exception as e:
                logger.error("Error in refresh loop: %s", e)
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(
            self._run(), name=f"refresh-user-{self._identity.user_id}"
        )

    async def stop(self) -> None:
        """Cancel the loop and wait until it has exited."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped position refresh for user %s", self._identity.user_id)

    async def __aenter__(self) -> "RefreshScheduler":
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
