"""Timing utilities for model and database calls."""

import time
from collections.abc import Generator
from contextlib import contextmanager

from reflect.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def timed(operation: str, *, slow_ms: float = 1500, very_slow_ms: float = 5000) -> Generator[None, None, None]:
    """Log how long the wrapped block took.

    Model calls sit on the path to showing a nudge, so the thresholds are
    tuned for remote latency rather than local queries.

    Usage:
        with timed("question generation"):
            result = agent.run_sync(prompt)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        if duration_ms < slow_ms:
            logger.debug(f"[{duration_ms:.2f}ms] {operation}")
        elif duration_ms < very_slow_ms:
            logger.info(f"[{duration_ms:.2f}ms] {operation} (slow)")
        else:
            logger.warning(f"[{duration_ms:.2f}ms] {operation} (very slow)")
