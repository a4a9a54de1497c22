"""Deal ledger and transaction outbox."""
from .http_ledger import HttpDealLedger
from .outbox import Outbox, OutboxEntry, OutboxStatus

__all__ = ["HttpDealLedger", "Outbox", "OutboxEntry", "OutboxStatus"]
