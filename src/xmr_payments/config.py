"""
Configuration management for xmr-payments.

Provides centralized configuration for:
- Payment expiry windows (wall-clock and block height)
- Reconciliation confirmation depth and lookback window
- Allocation retry bounds
- monero-wallet-rpc connection settings
- Background poller interval
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "XMR_PAYMENTS_"


@dataclass
class ExpiryPolicy:
    """When a ledger slot may be reused by a new allocation."""
    max_age_minutes: float = 30.0
    max_age_blocks: int = 15

    # False: expire once EITHER window has elapsed (earlier trigger).
    # True: expire only once BOTH windows have elapsed (later trigger).
    require_both: bool = False


@dataclass
class ReconciliationConfig:
    """Configuration for reconciliation passes."""
    # A transfer counts as confirmed once it is strictly deeper than this
    confirmation_depth: int = 5

    # Blocks to look back during a batch pass
    lookback_blocks: int = 1000


@dataclass
class AllocationConfig:
    """Bounds for the collision-retry loop."""
    max_attempts: int = 16
    attempt_timeout_seconds: float = 30.0


@dataclass
class WalletRPCConfig:
    """Connection settings for monero-wallet-rpc."""
    url: str = "http://127.0.0.1:18082/json_rpc"
    username: Optional[str] = None  # --rpc-login user
    password: Optional[str] = None
    timeout_seconds: float = 30.0

    # Wallet to open on connect (None = daemon already has one open)
    wallet_file: Optional[str] = None
    wallet_password: Optional[str] = None


@dataclass
class PollerConfig:
    """Configuration for the background reconciliation driver."""
    interval_seconds: float = 5.0


@dataclass
class TrackerConfig:
    """
    Master configuration for xmr-payments.

    Supports loading from environment variables with prefix XMR_PAYMENTS_.
    """
    expiry: ExpiryPolicy = field(default_factory=ExpiryPolicy)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    wallet: WalletRPCConfig = field(default_factory=WalletRPCConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)


def _get_env(key: str, default: Any = None, prefix: str = ENV_PREFIX) -> Any:
    """Get environment variable with prefix."""
    return os.getenv(f"{prefix}{key}", default)


def _get_env_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {ENV_PREFIX}{key}={value!r}")
        return default


def _get_env_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {ENV_PREFIX}{key}={value!r}")
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> TrackerConfig:
    """Build a configuration with environment variable overrides."""
    return TrackerConfig(
        expiry=ExpiryPolicy(
            max_age_minutes=_get_env_float("EXPIRY_MINUTES", 30.0),
            max_age_blocks=_get_env_int("EXPIRY_BLOCKS", 15),
            require_both=_get_env_bool("EXPIRY_REQUIRE_BOTH", False),
        ),
        reconciliation=ReconciliationConfig(
            confirmation_depth=_get_env_int("CONFIRMATION_DEPTH", 5),
            lookback_blocks=_get_env_int("LOOKBACK_BLOCKS", 1000),
        ),
        allocation=AllocationConfig(
            max_attempts=_get_env_int("ALLOCATION_MAX_ATTEMPTS", 16),
            attempt_timeout_seconds=_get_env_float("ALLOCATION_TIMEOUT_SECONDS", 30.0),
        ),
        wallet=WalletRPCConfig(
            url=_get_env("WALLET_RPC_URL", "http://127.0.0.1:18082/json_rpc"),
            username=_get_env("WALLET_RPC_USERNAME"),
            password=_get_env("WALLET_RPC_PASSWORD"),
            timeout_seconds=_get_env_float("WALLET_RPC_TIMEOUT_SECONDS", 30.0),
            wallet_file=_get_env("WALLET_FILE"),
            wallet_password=_get_env("WALLET_PASSWORD"),
        ),
        poller=PollerConfig(
            interval_seconds=_get_env_float("POLL_INTERVAL_SECONDS", 5.0),
        ),
    )


# Global configuration instance
_global_config: Optional[TrackerConfig] = None


def get_config() -> TrackerConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config_from_env()
    return _global_config


def set_config(config: Optional[TrackerConfig]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _global_config
    _global_config = config
