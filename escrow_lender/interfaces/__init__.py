"""Protocol interfaces for the escrow lender."""
from .chain import ChainClient
from .ledger import DealLedger
from .notifier import Notifier
from .wallet import WalletProvider

__all__ = ["ChainClient", "DealLedger", "Notifier", "WalletProvider"]
