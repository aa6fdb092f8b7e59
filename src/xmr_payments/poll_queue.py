"""FIFO of payment ids awaiting the next reconciliation pass."""
from __future__ import annotations

import asyncio
from typing import List

from .models import PaymentId


class PollQueue:
    """
    Unbounded queue drained in full by each batch pass.

    Duplicates are kept. Ids enqueued while a drain holds the lock land in
    the next drain.
    """

    def __init__(self):
        self._items: List[PaymentId] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    async def enqueue(self, payment_id: PaymentId) -> None:
        async with self._lock:
            self._items.append(payment_id)

    async def drain(self) -> List[PaymentId]:
        """Empty the queue and return its contents in FIFO order."""
        async with self._lock:
            items, self._items = self._items, []
            return items
