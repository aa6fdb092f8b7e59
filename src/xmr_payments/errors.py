"""
Exception hierarchy for xmr-payments.

Transport failures (wallet unreachable, RPC errors, malformed responses,
timeouts) are kept distinct from ledger lookups that find nothing, so a
caller can decide between re-invoking and treating a payment as unknown.
"""
from __future__ import annotations

from typing import Any, Optional


class PaymentTrackerError(Exception):
    """Base exception for all payment tracker errors."""
    pass


class TransportError(PaymentTrackerError):
    """Raised when the wallet service is unreachable or misbehaves."""

    def __init__(self, message: str, method: Optional[str] = None):
        self.method = method
        super().__init__(message)


class WalletRPCError(TransportError):
    """Raised when monero-wallet-rpc returns a JSON-RPC error object."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
        method: Optional[str] = None,
    ):
        self.code = code
        self.data = data
        super().__init__(message, method=method)


class WalletTimeoutError(TransportError):
    """Raised when a wallet call exceeds its deadline."""

    def __init__(self, method: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Wallet call {method} timed out after {timeout_seconds:.1f}s",
            method=method,
        )


class MalformedResponseError(TransportError):
    """Raised when a wallet response cannot be decoded."""
    pass


class PaymentNotFoundError(PaymentTrackerError):
    """Raised when a payment id is not present in the ledger."""

    def __init__(self, payment_id: Any):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


class AllocationExhaustedError(PaymentTrackerError):
    """Raised when no free payment id was found within the attempt budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a free payment id after {attempts} attempts"
        )
