"""
Expiry policy for ledger slots.

A payment id may be handed out again once its previous holder has expired.
Expiry is never evaluated proactively: a stale record keeps answering queries
with its last status until a new allocation overwrites it.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import ExpiryPolicy, get_config
from .models import PaymentRecord


def is_expired(
    record: PaymentRecord,
    current_height: int,
    now: Optional[datetime] = None,
    policy: Optional[ExpiryPolicy] = None,
) -> bool:
    """
    Check whether a record has aged out relative to a block height.

    Both thresholds are strict: a record exactly 30 minutes or exactly 15
    blocks old is still live.

    Args:
        record: Ledger record to check
        current_height: Reference chain height
        now: Reference wall-clock time (defaults to current UTC time)
        policy: Expiry windows (defaults to global configuration)

    Returns:
        True if the slot may be reused
    """
    policy = policy or get_config().expiry
    now = now or datetime.now(timezone.utc)

    time_expired = (now - record.created_at) > timedelta(minutes=policy.max_age_minutes)
    height_expired = (current_height - record.created_height) > policy.max_age_blocks

    if policy.require_both:
        return time_expired and height_expired
    return time_expired or height_expired
