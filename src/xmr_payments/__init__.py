"""Payment tracking for Monero integrated addresses."""

from .allocator import IdentifierAllocator
from .block_height import BlockHeightTracker
from .config import (
    AllocationConfig,
    ExpiryPolicy,
    PollerConfig,
    ReconciliationConfig,
    TrackerConfig,
    WalletRPCConfig,
    get_config,
    load_config_from_env,
    set_config,
)
from .errors import (
    AllocationExhaustedError,
    MalformedResponseError,
    PaymentNotFoundError,
    PaymentTrackerError,
    TransportError,
    WalletRPCError,
    WalletTimeoutError,
)
from .expiry import is_expired
from .ledger import PaymentLedger
from .logging_utils import setup_logging
from .models import PaymentId, PaymentRecord, PaymentStatus, Transfer
from .poll_queue import PollQueue
from .poller import PaymentPoller
from .reconciliation import ReconciliationEngine, aggregate_transfers, compute_status
from .tracker import PaymentTracker
from .wallet_rpc import WalletRPCClient, WalletService

__all__ = [
    "AllocationConfig",
    "AllocationExhaustedError",
    "BlockHeightTracker",
    "ExpiryPolicy",
    "IdentifierAllocator",
    "MalformedResponseError",
    "PaymentId",
    "PaymentLedger",
    "PaymentNotFoundError",
    "PaymentPoller",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentTracker",
    "PaymentTrackerError",
    "PollQueue",
    "PollerConfig",
    "ReconciliationConfig",
    "ReconciliationEngine",
    "TrackerConfig",
    "Transfer",
    "TransportError",
    "WalletRPCClient",
    "WalletRPCConfig",
    "WalletRPCError",
    "WalletService",
    "WalletTimeoutError",
    "aggregate_transfers",
    "compute_status",
    "get_config",
    "is_expired",
    "load_config_from_env",
    "set_config",
]
