"""Escrow and lender contract bindings (ABI encoding over raw JSON-RPC)."""
from __future__ import annotations

import logging
from typing import Any, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import decode_hex, keccak, to_checksum_address

from ...interfaces.chain import ChainClient

logger = logging.getLogger(__name__)

# Escrow
DEPOSIT = "deposit()"
WITHDRAW = "withdraw()"
CHANGE_RATE = "changeLendersInterestRate(uint256)"
LENDER_CONTRACT = "lenderContract()"

# Lender
LENDERS = "lenders(address)"
TOTAL_INTEREST_GAINED = "totalInterestGained(address)"
INTEREST_RATE = "interestRate()"


def encode_call(
    signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()
) -> str:
    """Calldata for ``signature`` with ABI-encoded ``args``."""
    selector = keccak(text=signature)[:4]
    encoded_args = abi_encode(list(arg_types), list(args)) if arg_types else b""
    return "0x" + (selector + encoded_args).hex()


def decode_uint(result: str) -> int:
    """First 32-byte word of ``result`` as an unsigned integer.

    Public struct getters return every field; the first word is the one we
    want for ``lenders(address)``.
    """
    data = decode_hex(result or "0x")
    if len(data) < 32:
        raise ValueError(f"Expected at least 32 bytes, got {len(data)}")
    (value,) = abi_decode(["uint256"], data[:32])
    return int(value)


def decode_address(result: str) -> str:
    data = decode_hex(result or "0x")
    if len(data) < 32:
        raise ValueError(f"Expected an address word, got {len(data)} bytes")
    (value,) = abi_decode(["address"], data[:32])
    return to_checksum_address(value)


class EscrowContracts:
    """Read accessors and transaction builders for the escrow/lender pair."""

    def __init__(
        self, client: ChainClient, escrow_address: str, lender_address: str = ""
    ) -> None:
        self._client = client
        self.escrow_address = to_checksum_address(escrow_address)
        self._lender_address = (
            to_checksum_address(lender_address) if lender_address else ""
        )

    async def lender_address(self) -> str:
        """Lender contract address, resolved once via ``lenderContract()``."""
        if not self._lender_address:
            result = await self._client.eth_call(
                self.escrow_address, encode_call(LENDER_CONTRACT)
            )
            self._lender_address = decode_address(result)
            logger.info("Resolved lender contract: %s", self._lender_address)
        return self._lender_address

    async def _call_lender(
        self, signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()
    ) -> int:
        lender = await self.lender_address()
        result = await self._client.eth_call(
            lender, encode_call(signature, arg_types, args)
        )
        return decode_uint(result)

    async def position_of(self, owner: str) -> int:
        return await self._call_lender(LENDERS, ["address"], [to_checksum_address(owner)])

    async def interest_of(self, owner: str) -> int:
        return await self._call_lender(
            TOTAL_INTEREST_GAINED, ["address"], [to_checksum_address(owner)]
        )

    async def interest_rate(self) -> int:
        return await self._call_lender(INTEREST_RATE)

    # ------------------------------------------------------------------
    # Transaction builders
    # ------------------------------------------------------------------

    def _tx(self, sender: str, data: str, value: int = 0) -> dict[str, Any]:
        tx: dict[str, Any] = {
            "from": to_checksum_address(sender),
            "to": self.escrow_address,
            "data": data,
        }
        if value:
            tx["value"] = hex(value)
        return tx

    def deposit_tx(self, sender: str, amount: int) -> dict[str, Any]:
        return self._tx(sender, encode_call(DEPOSIT), value=amount)

    def withdraw_tx(self, sender: str) -> dict[str, Any]:
        return self._tx(sender, encode_call(WITHDRAW))

    def change_rate_tx(self, sender: str, new_rate_bps: int) -> dict[str, Any]:
        return self._tx(
            sender, encode_call(CHANGE_RATE, ["uint256"], [new_rate_bps])
        )
