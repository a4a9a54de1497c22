"""EVM JSON-RPC client, wallet and escrow contract bindings."""
from .client import EvmClient, RpcError
from .contract import EscrowContracts
from .wallet import JsonRpcWallet

__all__ = ["EvmClient", "RpcError", "EscrowContracts", "JsonRpcWallet"]
