"""
Pytest configuration for xmr-payments tests.
"""
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

from xmr_payments.config import TrackerConfig, set_config
from xmr_payments.models import PaymentId, PaymentRecord, Transfer

# Keep the developer's environment out of the tests
for key in list(os.environ):
    if key.startswith("XMR_PAYMENTS_"):
        del os.environ[key]


@pytest.fixture(autouse=True)
def default_config():
    """Install a pristine default configuration for every test."""
    config = TrackerConfig()
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


def make_payment_id(n: int) -> PaymentId:
    """Deterministic payment id for tests."""
    return PaymentId(n.to_bytes(8, "big"))


def make_record(
    payment_id: PaymentId,
    amount_requested: int = 1_000_000_000,
    created_height: int = 1000,
    age: timedelta = timedelta(0),
) -> PaymentRecord:
    return PaymentRecord(
        payment_id=payment_id,
        amount_requested=amount_requested,
        created_height=created_height,
        created_at=datetime.now(timezone.utc) - age,
        address=f"4addr{payment_id}",
    )


@pytest.fixture
def payment_ids():
    """A handful of distinct payment ids."""
    return [make_payment_id(i) for i in range(1, 6)]


@pytest.fixture
def mock_wallet(payment_ids):
    """
    Wallet service mock.

    Hands out the ``payment_ids`` fixture in order, reports height 1000 and
    no transfers unless a test overrides the return values.
    """
    wallet = AsyncMock()
    wallet.new_integrated_address = AsyncMock(
        side_effect=[(f"4addr{pid}", pid) for pid in payment_ids]
    )
    wallet.current_height = AsyncMock(return_value=1000)
    wallet.bulk_transfers = AsyncMock(return_value=[])
    return wallet


@pytest.fixture
def transfer_factory():
    def _make(payment_id: PaymentId, amount: int, height: int, tx: str = "") -> Transfer:
        return Transfer(payment_id=payment_id, amount=amount, height=height, tx_hash=tx or None)
    return _make


@pytest.fixture
def record_factory():
    return make_record
