"""Integration tests for transaction submission and receipt classification."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from escrow_lender.errors import SubmissionError, SubmissionStage
from escrow_lender.models import ChangeRate, Deposit, Withdraw
from escrow_lender.services import LenderService, TransactionSubmitter
from tests.fakes import WALLET, FakeEvmNode


class TestSubmit:
    @pytest.mark.asyncio
    async def test_deposit_confirmed(self, service: LenderService, node: FakeEvmNode) -> None:
        receipt = await service.submitter.submit(Deposit(1000))

        assert receipt.success
        assert receipt.tx_hash == "0x" + f"{1:064x}"
        assert receipt.block_number == 101
        assert node.deposits[WALLET] == 1000

    @pytest.mark.asyncio
    async def test_every_call_sends_a_new_transaction(
        self, service: LenderService, node: FakeEvmNode
    ) -> None:
        await service.submitter.submit(Deposit(5))
        await service.submitter.submit(Deposit(5))

        assert node.sent_names() == ["deposit", "deposit"]
        assert node.deposits[WALLET] == 10

    @pytest.mark.asyncio
    async def test_rejection_is_not_sent(self, service: LenderService, node: FakeEvmNode) -> None:
        node.reject_next_send = "insufficient funds for gas * price + value"

        with pytest.raises(SubmissionError, match="insufficient funds") as exc_info:
            await service.submitter.submit(Deposit(1000))

        assert exc_info.value.stage is SubmissionStage.NOT_SENT
        assert not exc_info.value.broadcast
        assert node.deposits.get(WALLET, 0) == 0

    @pytest.mark.asyncio
    async def test_revert_carries_tx_hash(self, service: LenderService, node: FakeEvmNode) -> None:
        node.revert_next = True

        with pytest.raises(SubmissionError, match="reverted") as exc_info:
            await service.submitter.submit(Deposit(1000))

        assert exc_info.value.stage is SubmissionStage.REVERTED
        assert exc_info.value.broadcast
        assert node.deposits.get(WALLET, 0) == 0

    @pytest.mark.asyncio
    async def test_withdraw_of_empty_position_reverts(self, service: LenderService) -> None:
        with pytest.raises(SubmissionError) as exc_info:
            await service.submitter.submit(Withdraw())
        assert exc_info.value.stage is SubmissionStage.REVERTED

    @pytest.mark.asyncio
    async def test_missing_receipt_times_out_unconfirmed(
        self, service: LenderService, node: FakeEvmNode
    ) -> None:
        node.hold_receipts = True

        with pytest.raises(SubmissionError, match="No receipt") as exc_info:
            await service.submitter.submit(Deposit(1000))

        assert exc_info.value.stage is SubmissionStage.UNCONFIRMED
        assert exc_info.value.tx_hash == "0x" + f"{1:064x}"

    @pytest.mark.asyncio
    async def test_change_rate(self, service: LenderService, node: FakeEvmNode) -> None:
        await service.submitter.submit(ChangeRate(725))
        assert node.rate == 725


class TestSendFailures:
    @pytest.mark.asyncio
    async def test_wallet_without_accounts(self, sample_app_config) -> None:
        service = LenderService(sample_app_config, client=FakeEvmNode(accounts=[]), notifiers=[])

        with pytest.raises(SubmissionError, match="Wallet unavailable"):
            await service.submitter.send(Deposit(1))

    @pytest.mark.asyncio
    async def test_transport_error_is_unconfirmed(self, service: LenderService) -> None:
        wallet = AsyncMock()
        wallet.get_address = AsyncMock(return_value=WALLET)
        wallet.send_transaction = AsyncMock(side_effect=ConnectionError("read timed out"))
        submitter = TransactionSubmitter(wallet, service.contracts, service.client)

        with pytest.raises(SubmissionError, match="Broadcast status unknown") as exc_info:
            await submitter.send(Deposit(1))

        assert exc_info.value.stage is SubmissionStage.UNCONFIRMED
        assert exc_info.value.tx_hash is None

    @pytest.mark.asyncio
    async def test_empty_hash_rejected(self, service: LenderService) -> None:
        wallet = AsyncMock()
        wallet.get_address = AsyncMock(return_value=WALLET)
        wallet.send_transaction = AsyncMock(return_value="")
        submitter = TransactionSubmitter(wallet, service.contracts, service.client)

        with pytest.raises(SubmissionError, match="no transaction hash"):
            await submitter.send(Deposit(1))

    @pytest.mark.asyncio
    async def test_unsupported_operation(self, service: LenderService) -> None:
        with pytest.raises(TypeError, match="Unsupported operation"):
            await service.submitter.send("deposit")  # type: ignore[arg-type]


class TestReceiptPolling:
    @pytest.mark.asyncio
    async def test_poll_errors_are_retried(self, service: LenderService) -> None:
        client = AsyncMock()
        client.get_transaction_receipt = AsyncMock(
            side_effect=[
                RuntimeError("All RPC endpoints failed"),
                None,
                {"transactionHash": "0xabc", "status": "0x1", "blockNumber": "0x10"},
            ]
        )
        submitter = TransactionSubmitter(
            service.wallet, service.contracts, client, poll_interval=0.001
        )

        receipt = await submitter.wait("0xabc")

        assert receipt.success
        assert receipt.block_number == 16
        assert client.get_transaction_receipt.await_count == 3

    @pytest.mark.asyncio
    async def test_get_receipt_pending_is_none(
        self, service: LenderService, node: FakeEvmNode
    ) -> None:
        assert await service.submitter.get_receipt("0xdead") is None
