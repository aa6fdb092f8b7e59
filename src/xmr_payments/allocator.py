"""
Payment id allocation with collision avoidance.

The wallet draws payment ids at random from a 64-bit space, so a collision
with a live ledger entry is unlikely but possible. A colliding id is only
reused once its previous holder has expired.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from .block_height import BlockHeightTracker
from .config import AllocationConfig, ExpiryPolicy, get_config
from .errors import AllocationExhaustedError, WalletTimeoutError
from .expiry import is_expired
from .ledger import PaymentLedger
from .models import PaymentId, PaymentRecord, PaymentStatus

logger = logging.getLogger(__name__)


class IdentifierAllocator:
    """Hands out integrated addresses and registers them in the ledger."""

    def __init__(
        self,
        wallet,
        ledger: PaymentLedger,
        block_height: BlockHeightTracker,
        config: Optional[AllocationConfig] = None,
        expiry: Optional[ExpiryPolicy] = None,
    ):
        self._wallet = wallet
        self._ledger = ledger
        self._block_height = block_height
        self._config = config or get_config().allocation
        self._expiry = expiry or get_config().expiry

    async def _new_address(self) -> Tuple[str, PaymentId]:
        timeout = self._config.attempt_timeout_seconds
        try:
            return await asyncio.wait_for(self._wallet.new_integrated_address(), timeout)
        except asyncio.TimeoutError as e:
            raise WalletTimeoutError("make_integrated_address", timeout) from e

    async def allocate(self, amount_requested: int, info: Any = None) -> Tuple[str, PaymentId]:
        """
        Allocate a payment id and record the requested amount.

        Args:
            amount_requested: Amount in piconero (not validated)
            info: Opaque caller payload stored with the record

        Returns:
            (integrated address, payment id)

        Raises:
            TransportError: If the wallet call fails (not retried)
            AllocationExhaustedError: If every attempt hit a live payment id
        """
        # Height is refreshed opportunistically only if never seen
        if not self._block_height.is_known:
            await self._block_height.refresh(self._wallet)
        current_height = self._block_height.height
        now = datetime.now(timezone.utc)

        def _can_replace(existing: PaymentRecord) -> bool:
            return is_expired(existing, current_height, now=now, policy=self._expiry)

        for attempt in range(1, self._config.max_attempts + 1):
            address, payment_id = await self._new_address()
            record = PaymentRecord(
                payment_id=payment_id,
                address=address,
                amount_requested=amount_requested,
                created_height=current_height,
                created_at=datetime.now(timezone.utc),
                status=PaymentStatus.PENDING,
                info=info,
            )
            if await self._ledger.claim(payment_id, record, _can_replace):
                logger.info(
                    f"Allocated payment {payment_id} for {amount_requested} piconero "
                    f"at height {current_height}"
                )
                return address, payment_id

            logger.warning(
                f"Payment id {payment_id} is still live, retrying "
                f"(attempt {attempt}/{self._config.max_attempts})"
            )

        raise AllocationExhaustedError(self._config.max_attempts)
