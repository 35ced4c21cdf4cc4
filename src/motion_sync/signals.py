# src/motion_sync/signals.py
"""SIGINT/SIGTERM handling for a run that must leave a committed status file."""

import asyncio
import logging
import os
import signal
from types import FrameType
from typing import Any, Dict, Optional, Tuple

logger: logging.Logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """
    Sets the returned event on the first shutdown signal: no further upload
    starts, and the run commits the status file before returning. A second
    signal exits at once without committing.
    """

    def __init__(self) -> None:
        self._stop: asyncio.Event = asyncio.Event()
        self._previous: Dict[signal.Signals, Any] = {}

    def _on_signal(self, signum: int, _: Optional[FrameType]) -> None:
        if self._stop.is_set():
            logger.critical("Second shutdown signal, exiting without a commit.")
            os._exit(1)
        logger.warning(
            f"{signal.strsignal(signum)}: stopping after the current upload."
        )
        self._loop.call_soon_threadsafe(self._stop.set)

    async def __aenter__(self) -> asyncio.Event:
        self._loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._previous[sig] = signal.signal(sig, self._on_signal)
            except (ValueError, OSError) as e:  # not on the main thread
                logger.warning(f"Could not set handler for {sig.name}: {e}")
        return self._stop

    async def __aexit__(self, *args: Any) -> None:
        while self._previous:
            sig, handler = self._previous.popitem()
            try:
                signal.signal(sig, handler)
            except (ValueError, OSError) as e:
                logger.warning(f"Could not restore handler for {sig.name}: {e}")
