"""Notifier protocol for operator alerts."""
from typing import Protocol


class Notifier(Protocol):
    """Abstract interface for sending notifications."""

    async def send_alert(self, message: str, subject: str = "") -> bool: ...
