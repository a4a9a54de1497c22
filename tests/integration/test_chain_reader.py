"""Integration tests for chain reads and the position cache."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from escrow_lender.errors import ChainReadError
from escrow_lender.models import LenderIdentity
from escrow_lender.services import ChainStateReader, LenderService, PositionCache
from tests.fakes import WALLET, FakeEvmNode


class TestRead:
    @pytest.mark.asyncio
    async def test_reads_deposit_interest_and_rate(
        self, service: LenderService, node: FakeEvmNode, identity: LenderIdentity
    ) -> None:
        node.deposits[WALLET] = 1000
        node.accrue(WALLET, 25)

        position = await service.reader.read(identity)

        assert position.user_id == 7
        assert position.deposit_amount == 1000
        assert position.interest_earned == 25
        assert position.interest_rate_bps == 500
        assert position.rate_percent == 5.0

    @pytest.mark.asyncio
    async def test_empty_position_reads_zero(
        self, service: LenderService, identity: LenderIdentity
    ) -> None:
        position = await service.reader.read(identity)
        assert position.total == 0

    @pytest.mark.asyncio
    async def test_read_does_not_touch_cache(
        self, service: LenderService, identity: LenderIdentity
    ) -> None:
        await service.reader.read(identity)
        assert service.cache.get(7) is None

    @pytest.mark.asyncio
    async def test_rpc_failure_raises_chain_read_error(
        self, service: LenderService, node: FakeEvmNode, identity: LenderIdentity
    ) -> None:
        node.fail_reads = True
        with pytest.raises(ChainReadError, match="All RPC endpoints failed"):
            await service.reader.read(identity)

    @pytest.mark.asyncio
    async def test_negative_value_rejected(self, identity: LenderIdentity) -> None:
        contracts = MagicMock()
        contracts.position_of = AsyncMock(return_value=-1)
        contracts.interest_of = AsyncMock(return_value=0)
        contracts.interest_rate = AsyncMock(return_value=500)
        reader = ChainStateReader(contracts, PositionCache())

        with pytest.raises(ChainReadError, match="Invalid deposit"):
            await reader.read(identity)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_replaces_cached_snapshot(
        self, service: LenderService, node: FakeEvmNode, identity: LenderIdentity
    ) -> None:
        first = await service.reader.refresh(identity)
        node.deposits[WALLET] = 300
        second = await service.reader.refresh(identity)

        assert first.deposit_amount == 0
        assert service.cache.get(7) is second
        assert second.deposit_amount == 300

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_snapshot(
        self, service: LenderService, node: FakeEvmNode, identity: LenderIdentity
    ) -> None:
        node.deposits[WALLET] = 300
        cached = await service.reader.refresh(identity)

        node.fail_reads = True
        with pytest.raises(ChainReadError):
            await service.reader.refresh(identity)

        assert service.cache.get(7) is cached

    @pytest.mark.asyncio
    async def test_lender_address_resolved_once(
        self, service: LenderService, node: FakeEvmNode, identity: LenderIdentity
    ) -> None:
        await service.reader.refresh(identity)
        await service.reader.refresh(identity)

        # three lender reads per refresh plus a single lenderContract() lookup
        assert node.calls.count("eth_call") == 7
