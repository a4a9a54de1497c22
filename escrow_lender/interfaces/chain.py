"""Chain client protocol over EVM JSON-RPC."""
from typing import Any, Protocol


class ChainClient(Protocol):
    """Abstract interface for blockchain RPC interactions."""

    async def eth_call(self, to: str, data: str) -> str: ...

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None: ...
