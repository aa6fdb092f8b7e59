"""
Data model for the payment ledger.

Amounts are integer piconero (1e-12 XMR) throughout.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

PAYMENT_ID_SIZE = 8
PICONERO_PER_XMR = 10 ** 12


@dataclass(frozen=True)
class PaymentId:
    """Short payment id embedded in an integrated address."""
    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)):
            raise TypeError(f"Payment id must be bytes, got {type(self.raw).__name__}")
        if len(self.raw) != PAYMENT_ID_SIZE:
            raise ValueError(
                f"Payment id must be {PAYMENT_ID_SIZE} bytes, got {len(self.raw)}"
            )
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_hex(cls, value: str) -> "PaymentId":
        """Parse the canonical 16-character hex form."""
        if len(value) != PAYMENT_ID_SIZE * 2:
            raise ValueError(f"Payment id hex must be 16 characters: {value!r}")
        return cls(bytes.fromhex(value))

    @property
    def hex(self) -> str:
        return self.raw.hex()

    def __str__(self) -> str:
        return self.raw.hex()

    def __repr__(self) -> str:
        return f"PaymentId({self.raw.hex()!r})"


class PaymentStatus(str, Enum):
    """Threshold-derived status of a tracked payment."""
    PENDING = "pending"  # Less than the requested amount seen
    RECEIVED = "received"  # Requested amount seen, not yet deep enough
    CONFIRMED = "confirmed"  # Requested amount seen at confirmation depth

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.RECEIVED: 1,
    PaymentStatus.CONFIRMED: 2,
}


@dataclass
class PaymentRecord:
    """A payment tracked in the ledger."""
    payment_id: PaymentId
    amount_requested: int
    created_height: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    address: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    amount_received: int = 0
    amount_confirmed: int = 0

    # Highest status ever computed; never moves backward
    highest_status: PaymentStatus = PaymentStatus.PENDING

    # Caller payload, never interpreted by the tracker
    info: Any = None

    def copy(self) -> "PaymentRecord":
        """Return a snapshot detached from the ledger slot."""
        return dataclasses.replace(self)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "payment_id": str(self.payment_id),
            "address": self.address,
            "created_at": self.created_at.isoformat(),
            "created_height": self.created_height,
            "status": self.status.value,
            "highest_status": self.highest_status.value,
            "amount_requested": self.amount_requested,
            "amount_received": self.amount_received,
            "amount_confirmed": self.amount_confirmed,
        }


@dataclass(frozen=True)
class Transfer:
    """An incoming transfer reported by the wallet for a payment id."""
    payment_id: PaymentId
    amount: int
    height: int
    tx_hash: Optional[str] = None
    unlock_time: int = 0
