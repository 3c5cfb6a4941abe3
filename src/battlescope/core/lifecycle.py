"""
Long-running loop helpers: interruptible sleeps and shutdown signals.
"""

from __future__ import annotations

import asyncio
import signal

from .logging import get_logger

logger = get_logger(__name__)


async def wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """
    Sleep for ``timeout`` seconds, waking immediately if stop_event is set.

    Returns:
        True if the stop event was set, False if the timeout elapsed
    """
    if stop_event.is_set():
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set stop_event on SIGINT or SIGTERM."""

    def signal_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass
