# src/motion_sync/poller.py
"""
Periodic status reconciliation.

The poller ticks at a fixed cadence. Each tick, if no pass is running, starts a
pass that fetches status for every known object concurrently, folds the
reports into the records and commits the store once. A tick that fires while a
pass is still running is skipped, so there is never more than one writer of
the status file.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set

from motion_sync.exceptions import (
    ConnectError,
    IdentityMismatchError,
    MalformedReplicaError,
    ParseError,
)
from motion_sync.records import ObjectRecord
from motion_sync.reconcile import reconcile
from motion_sync.store import StatusStore

logger: logging.Logger = logging.getLogger(__name__)

StatusFetch = Callable[[str], Awaitable[Any]]

# Failures confined to the one record they occurred on.
RECORD_ERRORS = (ConnectError, ParseError, MalformedReplicaError)


class PollerState(Enum):
    """Whether a reconciliation pass is in flight."""

    IDLE = "idle"
    RECONCILING = "reconciling"


class StatusPoller:
    """Drives reconciliation passes over a `StatusStore` on a timer."""

    def __init__(
        self,
        store: StatusStore,
        fetch: StatusFetch,
        interval_s: float,
        shutdown_event: asyncio.Event,
    ) -> None:
        """
        Args:
            store (StatusStore): The records to reconcile and commit.
            fetch (StatusFetch): Returns the parsed status report for an id.
            interval_s (float): Seconds between ticks.
            shutdown_event (asyncio.Event): Stops the poller when set.
        """
        self._store: StatusStore = store
        self._fetch: StatusFetch = fetch
        self._interval_s: float = interval_s
        self._shutdown_event: asyncio.Event = shutdown_event
        self._state: PollerState = PollerState.IDLE
        self._pass_task: Optional[asyncio.Task[bool]] = None
        self.passes: int = 0
        self.skipped_ticks: int = 0

    @property
    def state(self) -> PollerState:
        return self._state

    async def run(self) -> None:
        """
        Ticks until shutdown. Returns once any in-flight pass has finished.

        Raises:
            IdentityMismatchError: If a pass detects corrupt bookkeeping.
        """
        logger.info(
            f"Status poller started. Reconciling every {self._interval_s}s."
        )
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        shutdown: asyncio.Task[Any] = asyncio.create_task(self._shutdown_event.wait())
        next_tick: float = loop.time() + self._interval_s
        try:
            while not self._shutdown_event.is_set():
                waiters: Set[asyncio.Future[Any]] = {shutdown}
                if self._pass_task is not None:
                    waiters.add(self._pass_task)
                await asyncio.wait(
                    waiters,
                    timeout=max(0.0, next_tick - loop.time()),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if self._pass_task is not None and self._pass_task.done():
                    task: asyncio.Task[bool] = self._pass_task
                    self._pass_task = None
                    task.result()  # re-raise fatal errors from the pass

                if loop.time() >= next_tick and not self._shutdown_event.is_set():
                    while next_tick <= loop.time():
                        next_tick += self._interval_s
                    self._tick()

            if self._pass_task is not None:
                await self._pass_task
        finally:
            shutdown.cancel()
            if self._pass_task is not None and not self._pass_task.done():
                self._pass_task.cancel()
                await asyncio.gather(self._pass_task, return_exceptions=True)
            self._pass_task = None
            logger.info("Status poller stopped.")

    def _tick(self) -> None:
        if self._state is PollerState.RECONCILING:
            self.skipped_ticks += 1
            logger.debug("Previous reconciliation pass still running; skipping tick.")
            return
        self._pass_task = asyncio.create_task(self.run_pass())

    async def run_pass(self) -> bool:
        """
        Reconciles every known record once, then commits if anything changed.

        Returns:
            bool: Whether the store was committed.

        Raises:
            IdentityMismatchError: If any status report is for the wrong object.
        """
        if self._state is PollerState.RECONCILING:
            raise RuntimeError("A reconciliation pass is already running.")
        self._state = PollerState.RECONCILING
        try:
            records: List[ObjectRecord] = self._store.records()
            results: List[Any] = await asyncio.gather(
                *(self._reconcile_record(record) for record in records),
                return_exceptions=True,
            )

            fatal: Optional[BaseException] = None
            for record, result in zip(records, results):
                if isinstance(result, IdentityMismatchError):
                    logger.critical(f"Object {record.source_key}: {result}")
                    fatal = fatal or result
                elif isinstance(result, RECORD_ERRORS):
                    logger.error(
                        f"Could not reconcile {record.id} ({record.source_key}): "
                        f"{type(result).__name__} - {result}"
                    )
                elif isinstance(result, BaseException):
                    raise result
            if fatal is not None:
                raise fatal

            self.passes += 1
            if self._store.dirty:
                await self._store.commit()
                return True
            return False
        finally:
            self._state = PollerState.IDLE

    async def _reconcile_record(self, record: ObjectRecord) -> bool:
        report: Any = await self._fetch(record.id)
        changed: bool = reconcile(record, report)
        if changed:
            self._store.mark_changed()
            logger.info(f"Object {record.source_key} status has been updated")
        return changed
