"""In-process cache of the last known lender position per user."""
from __future__ import annotations

from ..models import LenderPosition


class PositionCache:
    """Holds one snapshot per user; entries are only ever replaced wholesale."""

    def __init__(self) -> None:
        self._positions: dict[int, LenderPosition] = {}

    def get(self, user_id: int) -> LenderPosition | None:
        return self._positions.get(user_id)

    def put(self, position: LenderPosition) -> LenderPosition:
        self._positions[position.user_id] = position
        return position

    def discard(self, user_id: int) -> None:
        self._positions.pop(user_id, None)
