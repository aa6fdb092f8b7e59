"""
Payment tracker facade.

Wires the ledger, poll queue, block height, allocator and reconciliation
engine around one wallet service and exposes the operations a merchant
application calls.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from .allocator import IdentifierAllocator
from .block_height import BlockHeightTracker
from .config import TrackerConfig, get_config
from .expiry import is_expired
from .ledger import PaymentLedger
from .models import PaymentId, PaymentRecord
from .poll_queue import PollQueue
from .reconciliation import ReconciliationEngine
from .wallet_rpc import WalletRPCClient, WalletService

logger = logging.getLogger(__name__)


class PaymentTracker:
    """
    Tracks payments to integrated addresses of one wallet.

    All state is in memory and lives as long as the tracker.
    """

    def __init__(
        self,
        wallet: WalletService,
        config: Optional[TrackerConfig] = None,
        initial_height: Optional[int] = None,
    ):
        self._config = config or get_config()
        self._wallet = wallet
        self.ledger = PaymentLedger()
        self.queue = PollQueue()
        self.block_height = BlockHeightTracker(initial_height)
        self._allocator = IdentifierAllocator(
            wallet,
            self.ledger,
            self.block_height,
            config=self._config.allocation,
            expiry=self._config.expiry,
        )
        self._engine = ReconciliationEngine(
            wallet,
            self.ledger,
            self.queue,
            self.block_height,
            config=self._config.reconciliation,
        )

    @classmethod
    async def connect(cls, config: Optional[TrackerConfig] = None) -> "PaymentTracker":
        """
        Build a tracker backed by monero-wallet-rpc.

        Opens the configured wallet file (if any) and primes the block height.

        Raises:
            TransportError: If the wallet daemon cannot be reached
        """
        config = config or get_config()
        client = WalletRPCClient(config.wallet)
        if config.wallet.wallet_file:
            await client.open_wallet(config.wallet.wallet_file, config.wallet.wallet_password)
        height = await client.get_height()
        logger.info(f"Payment tracker connected at height {height}")
        return cls(client, config=config, initial_height=height)

    @property
    def wallet(self) -> WalletService:
        return self._wallet

    @property
    def current_height(self) -> int:
        return self.block_height.height

    async def allocate(self, amount_requested: int, info: Any = None) -> Tuple[str, PaymentId]:
        """Allocate an integrated address for a payment of ``amount_requested`` piconero."""
        return await self._allocator.allocate(amount_requested, info)

    def query(self, payment_id: PaymentId) -> Optional[PaymentRecord]:
        """
        Return the stored record without contacting the wallet.

        None means the id was never allocated here. An expired record keeps
        its last status until its slot is reallocated.
        """
        return self.ledger.get(payment_id)

    async def set_info(self, payment_id: PaymentId, info: Any) -> bool:
        """Attach a payload to a payment. Returns False if not tracked."""
        return await self.ledger.set_info(payment_id, info)

    async def enqueue(self, payment_id: PaymentId) -> None:
        """Schedule a payment for the next batch reconciliation."""
        await self.queue.enqueue(payment_id)

    async def reconcile_enqueued(self) -> List[PaymentRecord]:
        return await self._engine.reconcile_enqueued()

    async def reconcile_one(self, payment_id: PaymentId) -> PaymentRecord:
        return await self._engine.reconcile_one(payment_id)

    def is_expired(self, payment_id: PaymentId, now: Optional[datetime] = None) -> Optional[bool]:
        """Evaluate the expiry policy against the last known height.

        Returns None if the id is not tracked.
        """
        record = self.ledger.get(payment_id)
        if record is None:
            return None
        return is_expired(record, self.block_height.height, now=now, policy=self._config.expiry)

    async def close(self) -> None:
        """Close the wallet client if it holds network resources."""
        close = getattr(self._wallet, "close", None)
        if close is not None:
            await close()
