"""
In-memory ledger of tracked payments.

Features:
- Per-payment-id locks so different ids never contend
- Atomic read-modify-write for reconciliation and info updates
- Atomic claim-or-retry for the allocator
- Snapshot reads that never expose the live record
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Iterator, Optional

from .models import PaymentId, PaymentRecord

logger = logging.getLogger(__name__)

Mutation = Callable[[PaymentRecord], None]
ReplacePredicate = Callable[[PaymentRecord], bool]


class PaymentLedger:
    """
    Mapping from payment id to payment record.

    A missing key is the only signal for "never allocated" and for a record
    that is no longer tracked; the ledger itself never evicts anything.
    """

    def __init__(self):
        self._records: Dict[PaymentId, PaymentRecord] = {}
        self._locks: Dict[PaymentId, asyncio.Lock] = {}  # Per-id locks

    def _get_lock(self, payment_id: PaymentId) -> asyncio.Lock:
        """Get or create the lock for a payment id.

        No await between the lookup and the insert, so two coroutines on the
        same loop cannot create separate locks for one id.
        """
        lock = self._locks.get(payment_id)
        if lock is None:
            lock = self._locks[payment_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, payment_id: object) -> bool:
        return payment_id in self._records

    def __iter__(self) -> Iterator[PaymentId]:
        return iter(list(self._records))

    def get(self, payment_id: PaymentId) -> Optional[PaymentRecord]:
        """Return a copy of the record, or None if not tracked."""
        record = self._records.get(payment_id)
        return record.copy() if record is not None else None

    async def insert(self, payment_id: PaymentId, record: PaymentRecord) -> None:
        """Create or overwrite the slot for a payment id."""
        async with self._get_lock(payment_id):
            self._records[payment_id] = record

    async def claim(
        self,
        payment_id: PaymentId,
        record: PaymentRecord,
        can_replace: ReplacePredicate,
    ) -> bool:
        """
        Insert a record if the slot is free or its holder may be replaced.

        The check and the insert happen under the id's lock, so two
        allocations can never both win the same id.

        Returns:
            True if the record was stored, False if the slot is taken
        """
        async with self._get_lock(payment_id):
            existing = self._records.get(payment_id)
            if existing is not None and not can_replace(existing):
                return False
            if existing is not None:
                logger.info(f"Reusing expired payment slot {payment_id}")
            self._records[payment_id] = record
            return True

    async def mutate(
        self,
        payment_id: PaymentId,
        mutation: Mutation,
    ) -> Optional[PaymentRecord]:
        """
        Apply a mutation to a record under its lock.

        Returns:
            Copy of the mutated record, or None if the id is not tracked
        """
        # Records are never removed, so a miss needs no lock. Locks exist
        # only for ids that hold a record.
        if payment_id not in self._records:
            return None
        async with self._get_lock(payment_id):
            record = self._records.get(payment_id)
            if record is None:
                return None
            mutation(record)
            return record.copy()

    async def set_info(self, payment_id: PaymentId, info: Any) -> bool:
        """Attach a caller payload. Returns False if the id is not tracked."""

        def _attach(record: PaymentRecord) -> None:
            record.info = info

        return await self.mutate(payment_id, _attach) is not None
