"""Submits escrow transactions and classifies their outcome."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..chains.evm.client import RpcError
from ..chains.evm.contract import EscrowContracts
from ..errors import SubmissionError, SubmissionStage
from ..interfaces.chain import ChainClient
from ..interfaces.wallet import WalletProvider
from ..models import ChangeRate, Deposit, Operation, Receipt, Withdraw

logger = logging.getLogger(__name__)


def _parse_receipt(tx_hash: str, raw: dict[str, Any]) -> Receipt:
    status = int(str(raw.get("status", "0x0")), 16)
    block = raw.get("blockNumber")
    return Receipt(
        success=status == 1,
        tx_hash=raw.get("transactionHash", tx_hash),
        status=status,
        block_number=int(block, 16) if isinstance(block, str) else block,
    )


class TransactionSubmitter:
    """Sends one transaction per call and waits for its receipt.

    There is no deduplication and no retry: two calls send two transactions,
    and a failure is reported to the caller.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        contracts: EscrowContracts,
        client: ChainClient,
        poll_interval: float = 2.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._wallet = wallet
        self._contracts = contracts
        self._client = client
        self._poll_interval = poll_interval
        self._receipt_timeout = receipt_timeout

    def _build(self, sender: str, operation: Operation) -> dict[str, Any]:
        if isinstance(operation, Deposit):
            return self._contracts.deposit_tx(sender, operation.amount)
        if isinstance(operation, Withdraw):
            return self._contracts.withdraw_tx(sender)
        if isinstance(operation, ChangeRate):
            return self._contracts.change_rate_tx(sender, operation.new_rate_bps)
        raise TypeError(f"Unsupported operation: {operation!r}")

    async def send(self, operation: Operation) -> str:
        """Sign and broadcast ``operation``; returns the transaction hash."""
        try:
            sender = await self._wallet.get_address()
        except Exception as e:
            raise SubmissionError(f"Wallet unavailable: {e}") from e
        tx = self._build(sender, operation)

        try:
            tx_hash = await self._wallet.send_transaction(tx)
        except RpcError as e:
            # the node refused it (insufficient funds, rejected signature, ...)
            raise SubmissionError(f"Transaction rejected: {e.message}") from e
        except Exception as e:
            raise SubmissionError(
                f"Broadcast status unknown: {e}", stage=SubmissionStage.UNCONFIRMED
            ) from e

        if not tx_hash:
            raise SubmissionError("Wallet returned no transaction hash")

        logger.info("Sent %s in tx %s", type(operation).__name__, tx_hash)
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        """Single receipt poll; None while pending."""
        raw = await self._client.get_transaction_receipt(tx_hash)
        if not raw:
            return None
        return _parse_receipt(tx_hash, raw)

    async def wait(self, tx_hash: str) -> Receipt:
        """Poll until ``tx_hash`` is mined; raise unless it succeeded."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._receipt_timeout

        while True:
            try:
                receipt = await self.get_receipt(tx_hash)
            except Exception as e:
                logger.warning("Receipt poll for %s failed: %s", tx_hash, e)
                receipt = None

            if receipt is not None:
                if not receipt.success:
                    raise SubmissionError(
                        f"Transaction {tx_hash} reverted (status {receipt.status})",
                        stage=SubmissionStage.REVERTED,
                        tx_hash=tx_hash,
                    )
                logger.info("Transaction %s confirmed in block %s", tx_hash, receipt.block_number)
                return receipt

            if loop.time() >= deadline:
                raise SubmissionError(
                    f"No receipt for {tx_hash} after {self._receipt_timeout:.0f}s",
                    stage=SubmissionStage.UNCONFIRMED,
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(self._poll_interval)

    async def submit(self, operation: Operation) -> Receipt:
        """Send ``operation`` and block until it is confirmed."""
        tx_hash = await self.send(operation)
        return await self.wait(tx_hash)
