"""EVM JSON-RPC client with fallback support."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig

logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, error: Any) -> None:
        if isinstance(error, dict):
            self.code = error.get("code")
            self.message = str(error.get("message", error))
        else:
            self.code = None
            self.message = str(error)
        super().__init__(f"RPC Error: {self.message}")


class EvmClient:
    """EVM JSON-RPC client with automatic endpoint fallback for reads."""

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0

    async def _post(self, rpc_url: str, payload: dict[str, Any]) -> Any:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                rpc_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                result = await response.json()
                if "error" in result:
                    raise RpcError(result["error"])
                return result.get("result")

    async def rpc_call(
        self, method: str, params: list[Any], fallback: bool = True
    ) -> Any:
        """Make RPC call, trying alternative endpoints when ``fallback`` is set.

        Calls that broadcast a transaction must pass ``fallback=False``: a
        timeout does not prove the first node dropped it.
        """
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        if not fallback:
            return await self._post(self.endpoints[self.current_rpc_index], payload)

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                result = await self._post(rpc_url, payload)

                if rpc_index != self.current_rpc_index:
                    logger.info("Switched to RPC endpoint: %s", rpc_url)
                    self.current_rpc_index = rpc_index

                return result
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RuntimeError(f"All RPC endpoints failed. Last error: {last_error}")

    async def eth_call(self, to: str, data: str) -> str:
        """Execute a read-only contract call against the latest block."""
        result = await self.rpc_call("eth_call", [{"to": to, "data": data}, "latest"])
        return result or "0x"

    async def accounts(self) -> list[str]:
        """Accounts unlocked on the node."""
        return list(await self.rpc_call("eth_accounts", []) or [])

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """Ask the node to sign and broadcast ``tx``; returns the tx hash."""
        return await self.rpc_call("eth_sendTransaction", [tx], fallback=False)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Receipt for ``tx_hash``, or None while it is still pending."""
        return await self.rpc_call("eth_getTransactionReceipt", [tx_hash]) or None
