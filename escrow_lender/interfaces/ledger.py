"""Deal ledger protocol: append-only store of settled deals."""
from typing import Protocol

from ..models import DealRecord


class DealLedger(Protocol):
    """Abstract interface for persisting and listing deal records."""

    async def append(self, record: DealRecord) -> str: ...

    async def list_by_user(self, user_id: int) -> list[DealRecord]: ...
