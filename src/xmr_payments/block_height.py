"""Last-known chain height shared by the allocator and reconciliation."""
from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class BlockHeightTracker:
    """
    Holds the wallet's last reported height.

    Reads and writes happen on the event loop, so a plain attribute gives
    atomic load/store. Readers may see a value that is about to be
    refreshed; callers tolerate that staleness.
    """

    def __init__(self, initial_height: Optional[int] = None):
        self._height = initial_height

    @property
    def is_known(self) -> bool:
        return self._height is not None

    @property
    def height(self) -> int:
        """Current snapshot (0 if never refreshed)."""
        return self._height or 0

    def update(self, height: int) -> int:
        """Store a freshly reported height."""
        previous = self._height
        if previous is not None and height < previous:
            logger.warning(
                f"Wallet height went backwards: {previous} -> {height}"
            )
        self._height = height
        return height

    async def refresh(self, wallet) -> int:
        """
        Fetch the height from the wallet service and store it.

        Raises:
            TransportError: If the wallet cannot be reached
        """
        height = await wallet.current_height()
        logger.debug(f"Refreshed block height: {height}")
        return self.update(height)
