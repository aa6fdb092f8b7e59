"""
Logging utilities for payment tracking operations.

Features:
- Timed operation contexts with structured ``extra`` data
- One-call logging setup for host processes
"""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger("xmr_payments")

_operation_counter = 0


@dataclass
class OperationContext:
    """Context for a tracked operation."""
    operation_id: str
    name: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, duration_ms: float, success: bool = True, error: Optional[str] = None) -> None:
        """Mark operation as complete."""
        self.duration_ms = duration_ms
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation_id": self.operation_id,
            "name": self.name,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


def _generate_operation_id() -> str:
    global _operation_counter
    _operation_counter += 1
    return f"op_{int(time.time() * 1000)}_{_operation_counter}"


@asynccontextmanager
async def operation_context(name: str, **metadata: Any) -> AsyncIterator[OperationContext]:
    """
    Context manager for timing an operation.

    Usage:
        async with operation_context("reconcile_enqueued", queued=3) as ctx:
            ...
            ctx.metadata["changed"] = len(changed)
    """
    ctx = OperationContext(
        operation_id=_generate_operation_id(),
        name=name,
        metadata=metadata,
    )
    logger.debug(f"Starting {name}", extra={"operation": ctx.to_dict()})
    start = time.monotonic()

    try:
        yield ctx
        ctx.complete((time.monotonic() - start) * 1000)
    except BaseException as e:
        # Includes cancellation, so the completion line is always logged
        ctx.complete((time.monotonic() - start) * 1000, success=False, error=repr(e))
        raise
    finally:
        level = logging.INFO if ctx.success else logging.ERROR
        logger.log(
            level,
            f"Completed {name} in {ctx.duration_ms:.0f}ms (success={ctx.success})",
            extra={"operation": ctx.to_dict()},
        )


def setup_logging(level: str = "INFO", format_string: Optional[str] = None) -> None:
    """
    Configure logging for a host process embedding the tracker.

    Installs a root handler if none exists, sets the package logger to
    ``level`` and keeps httpx request lines out of INFO output.
    """
    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(
        level=numeric_level,
        format=format_string or "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(numeric_level)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
