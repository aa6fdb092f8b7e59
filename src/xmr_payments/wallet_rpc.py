"""
JSON-RPC client for monero-wallet-rpc.

Features:
- The three wallet capabilities the tracker needs (WalletService protocol)
- Optional HTTP digest auth for ``--rpc-login``
- Request timeout handling
- httpx failures wrapped into TransportError subclasses
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

import httpx

from .config import WalletRPCConfig, get_config
from .errors import (
    MalformedResponseError,
    TransportError,
    WalletRPCError,
    WalletTimeoutError,
)
from .models import PaymentId, Transfer

logger = logging.getLogger(__name__)


class WalletService(Protocol):
    """Capabilities the tracker requires from the wallet collaborator.

    Implementations must be safe to call from concurrent tasks.
    """

    async def new_integrated_address(self) -> Tuple[str, PaymentId]:
        ...

    async def current_height(self) -> int:
        ...

    async def bulk_transfers(
        self,
        payment_ids: Iterable[PaymentId],
        min_height: int,
    ) -> List[Transfer]:
        ...


class WalletRPCClient:
    """
    Async client for a monero-wallet-rpc daemon.

    One httpx.AsyncClient is shared by all calls; httpx connection pools
    are safe for concurrent use from a single event loop.
    """

    def __init__(
        self,
        config: Optional[WalletRPCConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or get_config().wallet
        self._http_client = http_client
        self._request_id = 0

        logger.info(f"Initialized wallet RPC client for {self._config.url}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            auth = None
            if self._config.username is not None:
                auth = httpx.DigestAuth(self._config.username, self._config.password or "")
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                auth=auth,
            )
        return self._http_client

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            The ``result`` object of the response

        Raises:
            WalletTimeoutError: If the request times out
            WalletRPCError: If the wallet returns an error object
            MalformedResponseError: If the response is not valid JSON-RPC
            TransportError: For any other HTTP failure
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": str(self._request_id),
            "method": method,
            "params": params or {},
        }

        client = await self._get_client()
        start_time = time.monotonic()
        try:
            response = await client.post(self._config.url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise WalletTimeoutError(method, self._config.timeout_seconds) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Wallet RPC {method} failed: {e}", method=method) from e

        latency_ms = (time.monotonic() - start_time) * 1000
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Wallet RPC {method} returned non-JSON body", method=method
            ) from e

        if not isinstance(body, dict):
            raise MalformedResponseError(
                f"Wallet RPC {method} returned {type(body).__name__}", method=method
            )

        if "error" in body:
            error = body["error"] or {}
            raise WalletRPCError(
                message=f"Wallet RPC {method} error: {error.get('message', error)}",
                code=error.get("code"),
                data=error.get("data"),
                method=method,
            )

        result = body.get("result")
        if not isinstance(result, dict):
            raise MalformedResponseError(
                f"Wallet RPC {method} response has no result object", method=method
            )

        logger.debug(f"Wallet RPC {method} succeeded in {latency_ms:.0f}ms")
        return result

    async def open_wallet(self, filename: str, password: Optional[str] = None) -> None:
        """Open a wallet file on the daemon."""
        logger.info(f"Opening wallet {filename}")
        await self.call("open_wallet", {"filename": filename, "password": password or ""})

    async def get_height(self) -> int:
        """Get the wallet's current block height."""
        result = await self.call("get_height")
        try:
            return int(result["height"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(
                f"get_height returned {result!r}", method="get_height"
            ) from e

    async def make_integrated_address(self) -> Tuple[str, PaymentId]:
        """Create an integrated address with a random payment id."""
        result = await self.call("make_integrated_address")
        try:
            return result["integrated_address"], PaymentId.from_hex(result["payment_id"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(
                f"make_integrated_address returned {result!r}",
                method="make_integrated_address",
            ) from e

    async def get_bulk_payments(
        self,
        payment_ids: Iterable[PaymentId],
        min_block_height: int,
    ) -> List[Transfer]:
        """Get incoming payments for the given ids at or above a height."""
        result = await self.call(
            "get_bulk_payments",
            {
                "payment_ids": [str(pid) for pid in payment_ids],
                "min_block_height": min_block_height,
            },
        )
        # The daemon omits "payments" entirely when nothing matched
        try:
            return [
                Transfer(
                    payment_id=PaymentId.from_hex(entry["payment_id"]),
                    amount=int(entry["amount"]),
                    height=int(entry["block_height"]),
                    tx_hash=entry.get("tx_hash"),
                    unlock_time=int(entry.get("unlock_time", 0)),
                )
                for entry in result.get("payments") or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(
                f"get_bulk_payments returned malformed entry: {e}",
                method="get_bulk_payments",
            ) from e

    # WalletService protocol

    async def new_integrated_address(self) -> Tuple[str, PaymentId]:
        return await self.make_integrated_address()

    async def current_height(self) -> int:
        return await self.get_height()

    async def bulk_transfers(
        self,
        payment_ids: Iterable[PaymentId],
        min_height: int,
    ) -> List[Transfer]:
        return await self.get_bulk_payments(payment_ids, min_height)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "WalletRPCClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
