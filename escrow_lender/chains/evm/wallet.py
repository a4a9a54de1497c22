"""Wallet backed by an account unlocked on the JSON-RPC node."""
import logging
from typing import Any

from .client import EvmClient

logger = logging.getLogger(__name__)


class JsonRpcWallet:
    """Wallet provider that delegates signing to the node.

    Keys never leave the node; this class only knows the address.
    """

    def __init__(self, client: EvmClient, address: str = "") -> None:
        self._client = client
        self._address = address

    async def get_address(self) -> str:
        """Configured address, else the node's first unlocked account."""
        if not self._address:
            accounts = await self._client.accounts()
            if not accounts:
                raise RuntimeError("Wallet provider has no unlocked accounts")
            self._address = accounts[0]
            logger.info("Using node account %s", self._address)
        return self._address

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        return await self._client.send_transaction(tx)
