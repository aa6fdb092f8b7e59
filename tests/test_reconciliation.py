"""
Tests for transfer aggregation and reconciliation passes.
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from xmr_payments.block_height import BlockHeightTracker
from xmr_payments.config import ReconciliationConfig
from xmr_payments.errors import PaymentNotFoundError, TransportError
from xmr_payments.ledger import PaymentLedger
from xmr_payments.models import PaymentStatus
from xmr_payments.poll_queue import PollQueue
from xmr_payments.reconciliation import (
    ReconciliationEngine,
    TransferTotals,
    aggregate_transfers,
    compute_status,
)

XMR = 1_000_000_000_000
HEIGHT = 1000


class TestAggregateTransfers:
    """Tests for aggregate_transfers."""

    def test_groups_by_payment_id(self, payment_ids, transfer_factory):
        a, b = payment_ids[0], payment_ids[1]
        totals = aggregate_transfers(
            [
                transfer_factory(a, 600_000_000, HEIGHT - 6),
                transfer_factory(a, 500_000_000, HEIGHT - 2),
                transfer_factory(b, 7, HEIGHT - 100),
            ],
            HEIGHT,
            confirmation_depth=5,
        )

        assert totals[a] == TransferTotals(received=1_100_000_000, confirmed=600_000_000)
        assert totals[b] == TransferTotals(received=7, confirmed=7)

    def test_depth_boundary_is_strict(self, payment_ids, transfer_factory):
        a = payment_ids[0]
        totals = aggregate_transfers(
            [transfer_factory(a, 10, HEIGHT - 5)], HEIGHT, confirmation_depth=5
        )
        assert totals[a] == TransferTotals(received=10, confirmed=0)

    def test_empty(self):
        assert aggregate_transfers([], HEIGHT, 5) == {}


class TestComputeStatus:
    """Tests for compute_status."""

    def test_confirmed_is_inclusive(self):
        assert compute_status(100, 100, 100) == PaymentStatus.CONFIRMED

    def test_received_is_inclusive(self):
        assert compute_status(100, 99, 100) == PaymentStatus.RECEIVED

    def test_pending(self):
        assert compute_status(99, 0, 100) == PaymentStatus.PENDING

    def test_zero_request_is_immediately_confirmed(self):
        assert compute_status(0, 0, 0) == PaymentStatus.CONFIRMED


class TestReconciliationEngine:
    """Tests for ReconciliationEngine."""

    @pytest.fixture
    def ledger(self):
        return PaymentLedger()

    @pytest.fixture
    def queue(self):
        return PollQueue()

    @pytest.fixture
    def engine(self, mock_wallet, ledger, queue):
        return ReconciliationEngine(mock_wallet, ledger, queue, BlockHeightTracker(900))

    @pytest.mark.asyncio
    async def test_empty_queue_skips_wallet_query(self, engine, mock_wallet):
        assert await engine.reconcile_enqueued() == []

        mock_wallet.current_height.assert_called_once()
        mock_wallet.bulk_transfers.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_confirmation_yields_received(
        self, engine, ledger, queue, mock_wallet, payment_ids, record_factory, transfer_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid, amount_requested=1_000_000_000))
        await queue.enqueue(pid)
        mock_wallet.bulk_transfers.return_value = [
            transfer_factory(pid, 600_000_000, HEIGHT - 6),
            transfer_factory(pid, 500_000_000, HEIGHT - 2),
        ]

        changed = await engine.reconcile_enqueued()

        assert len(changed) == 1
        record = changed[0]
        assert record.payment_id == pid
        assert record.amount_received == 1_100_000_000
        assert record.amount_confirmed == 600_000_000
        assert record.status == PaymentStatus.RECEIVED
        assert ledger.get(pid).status == PaymentStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_query_uses_lookback_window(self, engine, ledger, queue, mock_wallet, payment_ids, record_factory):
        mock_wallet.current_height.return_value = 5000
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid))
        await queue.enqueue(pid)

        await engine.reconcile_enqueued()

        mock_wallet.bulk_transfers.assert_called_once_with([pid], 4000)

    @pytest.mark.asyncio
    async def test_lookback_window_never_negative(self, engine, ledger, queue, mock_wallet, payment_ids, record_factory):
        mock_wallet.current_height.return_value = 10
        pid = payment_ids[0]
        await queue.enqueue(pid)

        await engine.reconcile_enqueued()

        mock_wallet.bulk_transfers.assert_called_once_with([pid], 0)

    @pytest.mark.asyncio
    async def test_duplicate_queue_entries_make_one_query(
        self, engine, ledger, queue, mock_wallet, payment_ids, record_factory
    ):
        a, b = payment_ids[0], payment_ids[1]
        for pid in (a, b, a, a):
            await queue.enqueue(pid)

        await engine.reconcile_enqueued()

        mock_wallet.bulk_transfers.assert_called_once_with([a, b], 0)

    @pytest.mark.asyncio
    async def test_refreshes_height_before_aggregating(
        self, engine, ledger, queue, mock_wallet, payment_ids, record_factory, transfer_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid, amount_requested=10))
        await queue.enqueue(pid)
        mock_wallet.current_height.return_value = 2000
        mock_wallet.bulk_transfers.return_value = [transfer_factory(pid, 10, 1994)]

        changed = await engine.reconcile_enqueued()

        assert changed[0].status == PaymentStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_untracked_ids_are_dropped(
        self, engine, ledger, queue, mock_wallet, payment_ids, transfer_factory
    ):
        pid = payment_ids[0]
        await queue.enqueue(pid)
        mock_wallet.bulk_transfers.return_value = [transfer_factory(pid, 10, HEIGHT - 10)]

        assert await engine.reconcile_enqueued() == []
        assert len(ledger._locks) == 0

    @pytest.mark.asyncio
    async def test_ids_without_transfers_are_untouched(
        self, engine, ledger, queue, payment_ids, record_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid))
        await queue.enqueue(pid)

        assert await engine.reconcile_enqueued() == []
        assert ledger.get(pid).status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_amounts_are_replaced_not_added(
        self, engine, ledger, queue, mock_wallet, payment_ids, record_factory, transfer_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid, amount_requested=100))
        mock_wallet.bulk_transfers.return_value = [transfer_factory(pid, 40, HEIGHT - 1)]

        await queue.enqueue(pid)
        await engine.reconcile_enqueued()
        await queue.enqueue(pid)
        await engine.reconcile_enqueued()

        assert ledger.get(pid).amount_received == 40

    @pytest.mark.asyncio
    async def test_status_can_move_backward_but_highest_status_latches(
        self, engine, ledger, queue, mock_wallet, payment_ids, record_factory, transfer_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid, amount_requested=100))

        mock_wallet.bulk_transfers.return_value = [transfer_factory(pid, 100, HEIGHT - 1)]
        await queue.enqueue(pid)
        await engine.reconcile_enqueued()
        assert ledger.get(pid).status == PaymentStatus.RECEIVED

        mock_wallet.bulk_transfers.return_value = [transfer_factory(pid, 50, HEIGHT - 1)]
        await queue.enqueue(pid)
        changed = await engine.reconcile_enqueued()

        assert changed[0].status == PaymentStatus.PENDING
        assert changed[0].highest_status == PaymentStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_retried(
        self, engine, ledger, queue, mock_wallet, payment_ids, record_factory
    ):
        pid = payment_ids[0]
        await queue.enqueue(pid)
        mock_wallet.bulk_transfers.side_effect = TransportError("down")

        with pytest.raises(TransportError):
            await engine.reconcile_enqueued()

        assert await queue.drain() == []
        assert mock_wallet.bulk_transfers.call_count == 1

    @pytest.mark.asyncio
    async def test_custom_confirmation_depth(
        self, mock_wallet, ledger, queue, payment_ids, record_factory, transfer_factory
    ):
        engine = ReconciliationEngine(
            mock_wallet, ledger, queue, BlockHeightTracker(),
            config=ReconciliationConfig(confirmation_depth=10, lookback_blocks=50),
        )
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid, amount_requested=10))
        await queue.enqueue(pid)
        mock_wallet.bulk_transfers.return_value = [transfer_factory(pid, 10, HEIGHT - 8)]

        changed = await engine.reconcile_enqueued()

        mock_wallet.bulk_transfers.assert_called_once_with([pid], 950)
        assert changed[0].status == PaymentStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_reconcile_one_missing_makes_no_wallet_call(self, engine, mock_wallet, payment_ids):
        with pytest.raises(PaymentNotFoundError):
            await engine.reconcile_one(payment_ids[0])

        assert mock_wallet.current_height.call_count == 0
        assert mock_wallet.bulk_transfers.call_count == 0
        assert mock_wallet.new_integrated_address.call_count == 0

    @pytest.mark.asyncio
    async def test_reconcile_one_queries_from_creation_height(
        self, engine, ledger, mock_wallet, payment_ids, record_factory, transfer_factory
    ):
        pid, other = payment_ids[0], payment_ids[1]
        await ledger.insert(pid, record_factory(pid, amount_requested=XMR, created_height=990))
        mock_wallet.bulk_transfers.return_value = [
            transfer_factory(pid, XMR, HEIGHT - 6),
            transfer_factory(other, XMR, HEIGHT - 6),
        ]

        record = await engine.reconcile_one(pid)

        mock_wallet.bulk_transfers.assert_called_once_with([pid], 990)
        assert record.status == PaymentStatus.CONFIRMED
        assert record.amount_received == XMR
        assert record.amount_confirmed == XMR

    @pytest.mark.asyncio
    async def test_reconcile_one_without_transfers_stays_pending(
        self, engine, ledger, payment_ids, record_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid, amount_requested=5))

        record = await engine.reconcile_one(pid)

        assert record.status == PaymentStatus.PENDING
        assert record.amount_received == 0

    @pytest.mark.asyncio
    async def test_reconcile_one_propagates_transport_error(
        self, engine, ledger, mock_wallet, payment_ids, record_factory
    ):
        pid = payment_ids[0]
        await ledger.insert(pid, record_factory(pid))
        mock_wallet.bulk_transfers = AsyncMock(side_effect=TransportError("down"))

        with pytest.raises(TransportError):
            await engine.reconcile_one(pid)
