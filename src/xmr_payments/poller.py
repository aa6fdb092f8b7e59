"""
Background driver for batch reconciliation.

Calls ``reconcile_enqueued`` on a fixed interval and hands every changed
record to registered callbacks. Passes are serialised.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

from .config import PollerConfig, get_config
from .models import PaymentRecord

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[PaymentRecord], Any]


class PaymentPoller:
    """
    Periodically reconciles the tracker's poll queue.

    Features:
    - One pass at a time (overlapping passes are never started)
    - Callback system for status changes (sync or async callbacks)
    - Failed passes are logged and the loop keeps running
    """

    def __init__(self, tracker, config: Optional[PollerConfig] = None):
        self._tracker = tracker
        self._config = config or get_config().poller
        self._callbacks: List[ChangeCallback] = []
        self._pass_lock = asyncio.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def add_callback(self, callback: ChangeCallback) -> None:
        """Add a callback for changed payment records."""
        self._callbacks.append(callback)

    async def poll_once(self) -> List[PaymentRecord]:
        """Run a single reconciliation pass and notify callbacks."""
        async with self._pass_lock:
            changed = await self._tracker.reconcile_enqueued()

        for record in changed:
            for callback in self._callbacks:
                try:
                    result = callback(record)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Callback failed for payment {record.payment_id}: {e}")
        return changed

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Payment poller started (interval={self._config.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Payment poller stopped")

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error in payment poller: {e}")

            await asyncio.sleep(self._config.interval_seconds)
