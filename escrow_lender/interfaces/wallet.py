"""Wallet protocol: account address and transaction signing."""
from typing import Any, Protocol


class WalletProvider(Protocol):
    """Opaque capability that knows the active address and signs transactions."""

    async def get_address(self) -> str: ...

    async def send_transaction(self, tx: dict[str, Any]) -> str: ...
