"""
Reconciliation of wallet-reported transfers into ledger status.

Each pass recomputes a payment's amounts from scratch within its query
window and derives the status from absolute thresholds. Status is therefore
a function of the latest observation, not a latch: if the wallet reports
less than before, the status can move backward. ``highest_status`` on the
record keeps the maximum ever reached.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .block_height import BlockHeightTracker
from .config import ReconciliationConfig, get_config
from .errors import PaymentNotFoundError
from .ledger import PaymentLedger
from .logging_utils import operation_context
from .models import PaymentId, PaymentRecord, PaymentStatus, Transfer
from .poll_queue import PollQueue

logger = logging.getLogger(__name__)


@dataclass
class TransferTotals:
    """Aggregated transfer amounts for one payment id."""
    received: int = 0
    confirmed: int = 0

    @property
    def is_zero(self) -> bool:
        return self.received == 0 and self.confirmed == 0


def aggregate_transfers(
    transfers: Iterable[Transfer],
    current_height: int,
    confirmation_depth: int,
) -> Dict[PaymentId, TransferTotals]:
    """
    Sum transfers per payment id.

    Every transfer counts towards ``received``; only those strictly deeper
    than ``confirmation_depth`` count towards ``confirmed``.
    """
    totals: Dict[PaymentId, TransferTotals] = {}
    for transfer in transfers:
        entry = totals.setdefault(transfer.payment_id, TransferTotals())
        entry.received += transfer.amount
        if current_height - transfer.height > confirmation_depth:
            entry.confirmed += transfer.amount
    return totals


def compute_status(received: int, confirmed: int, requested: int) -> PaymentStatus:
    """Derive status from absolute thresholds (inclusive comparisons)."""
    if confirmed >= requested:
        return PaymentStatus.CONFIRMED
    if received >= requested:
        return PaymentStatus.RECEIVED
    return PaymentStatus.PENDING


def _apply_totals(record: PaymentRecord, totals: TransferTotals) -> None:
    record.amount_received = totals.received
    record.amount_confirmed = totals.confirmed
    record.status = compute_status(totals.received, totals.confirmed, record.amount_requested)
    if record.status.rank > record.highest_status.rank:
        record.highest_status = record.status


class ReconciliationEngine:
    """
    Applies wallet transfer data to ledger entries.

    Overlapping ``reconcile_enqueued`` calls are not prevented here; each
    sees a disjoint drain of the queue. Serialise the periodic driver if
    that matters (PaymentPoller does).
    """

    def __init__(
        self,
        wallet,
        ledger: PaymentLedger,
        queue: PollQueue,
        block_height: BlockHeightTracker,
        config: Optional[ReconciliationConfig] = None,
    ):
        self._wallet = wallet
        self._ledger = ledger
        self._queue = queue
        self._block_height = block_height
        self._config = config or get_config().reconciliation

    async def reconcile_enqueued(self) -> List[PaymentRecord]:
        """
        Run one batch pass over every queued payment id.

        Returns:
            Snapshots of every ledger record that was updated

        Raises:
            TransportError: If the wallet cannot be queried. The drained ids
                are not put back; callers re-enqueue if they want a retry.
        """
        async with operation_context("reconcile_enqueued") as ctx:
            current_height = await self._block_height.refresh(self._wallet)
            queued = await self._queue.drain()
            ctx.metadata["queued"] = len(queued)
            if not queued:
                return []

            # Duplicates would make the wallet report the same transfer twice
            payment_ids = list(dict.fromkeys(queued))
            min_height = max(0, current_height - self._config.lookback_blocks)

            transfers = await self._wallet.bulk_transfers(payment_ids, min_height)

            totals = aggregate_transfers(
                transfers, current_height, self._config.confirmation_depth
            )

            changed: List[PaymentRecord] = []
            for payment_id, payment_totals in totals.items():
                if payment_totals.is_zero:
                    continue
                record = await self._ledger.mutate(
                    payment_id,
                    lambda r, t=payment_totals: _apply_totals(r, t),
                )
                if record is None:
                    logger.debug(f"Ignoring transfers for untracked payment {payment_id}")
                    continue
                logger.info(
                    f"Payment {payment_id}: {record.status.value} "
                    f"(received={record.amount_received}, confirmed={record.amount_confirmed}, "
                    f"requested={record.amount_requested})"
                )
                changed.append(record)

            ctx.metadata["transfers"] = len(transfers)
            ctx.metadata["changed"] = len(changed)
            return changed

    async def reconcile_one(self, payment_id: PaymentId) -> PaymentRecord:
        """
        Reconcile a single payment immediately.

        Queries from the payment's own creation height instead of the batch
        lookback window.

        Raises:
            PaymentNotFoundError: If the id is not tracked (no wallet call made)
            TransportError: If the wallet cannot be queried
        """
        snapshot = self._ledger.get(payment_id)
        if snapshot is None:
            raise PaymentNotFoundError(payment_id)

        async with operation_context("reconcile_one", payment_id=str(payment_id)):
            current_height = await self._block_height.refresh(self._wallet)
            transfers = await self._wallet.bulk_transfers([payment_id], snapshot.created_height)
            totals = aggregate_transfers(
                (t for t in transfers if t.payment_id == payment_id),
                current_height,
                self._config.confirmation_depth,
            ).get(payment_id, TransferTotals())

            record = await self._ledger.mutate(
                payment_id, lambda r: _apply_totals(r, totals)
            )
            if record is None:
                raise PaymentNotFoundError(payment_id)

            logger.info(
                f"Payment {payment_id}: {record.status.value} "
                f"(received={record.amount_received}, confirmed={record.amount_confirmed})"
            )
            return record
