"""End-to-end tests of a lender session over the wired service."""
from __future__ import annotations

import asyncio

import pytest

from escrow_lender.errors import Unauthorized
from escrow_lender.models import DealType, Outcome
from escrow_lender.services import LenderService
from tests.fakes import ADMIN, WALLET, FakeDealLedger, FakeEvmNode


class TestSession:
    @pytest.mark.asyncio
    async def test_identity_requires_start(self, service: LenderService) -> None:
        session = service.session(7)
        with pytest.raises(RuntimeError, match="not started"):
            session.identity

    @pytest.mark.asyncio
    async def test_start_resolves_node_account(self, service: LenderService) -> None:
        session = service.session(7)
        await session.start(refresh=False)
        assert session.identity.address == WALLET
        assert session.identity.user_id == 7

    @pytest.mark.asyncio
    async def test_context_refreshes_position(
        self, service: LenderService, node: FakeEvmNode
    ) -> None:
        node.deposits[WALLET] = 250

        async with service.session(7, refresh_interval=0.01) as session:
            await asyncio.sleep(0.05)
            assert session.position is not None
            assert session.position.deposit_amount == 250

        assert [t for t in asyncio.all_tasks() if t.get_name().startswith("refresh-user-")] == []

    @pytest.mark.asyncio
    async def test_deposit_withdraw_and_history(
        self, service: LenderService, node: FakeEvmNode
    ) -> None:
        session = service.session(7)
        await session.start(refresh=False)

        assert (await session.deposit(100)).outcome is Outcome.SETTLED
        assert (await session.deposit(200)).outcome is Outcome.SETTLED
        node.accrue(WALLET, 15)
        assert (await session.withdraw()).outcome is Outcome.SETTLED

        deals = await session.deals()
        assert [(d.deal_type, d.amount) for d in deals] == [
            (DealType.WITHDRAW, 315),
            (DealType.DEPOSIT, 200),
            (DealType.DEPOSIT, 100),
        ]
        assert session.position is not None
        assert session.position.total == 0

    @pytest.mark.asyncio
    async def test_deals_are_per_user(
        self, service: LenderService, deal_ledger: FakeDealLedger
    ) -> None:
        mine = service.session(7)
        await mine.start(refresh=False)
        await mine.deposit(100)

        other = service.session(8)
        await other.start(refresh=False)
        assert await other.deals() == []
        assert len(await mine.deals()) == 1


class TestAdmin:
    @pytest.mark.asyncio
    async def test_regular_user_cannot_change_rate(
        self, service: LenderService, node: FakeEvmNode
    ) -> None:
        session = service.session(7)
        await session.start(refresh=False)

        assert not session.is_admin
        with pytest.raises(Unauthorized):
            await session.change_rate(900)
        assert node.sent == []
        assert node.rate == 500

    @pytest.mark.asyncio
    async def test_admin_changes_rate(self, sample_app_config) -> None:
        node = FakeEvmNode(accounts=[ADMIN])
        service = LenderService(
            sample_app_config, client=node, ledger=FakeDealLedger(), notifiers=[]
        )
        session = service.session(1)
        await session.start(refresh=False)

        assert session.is_admin
        receipt = await session.change_rate(750)

        assert receipt.success
        assert node.rate == 750
        position = await session.refresh()
        assert position.interest_rate_bps == 750
        assert position.rate_percent == 7.5
