# src/motion_sync/sink.py
"""
A write destination that streams its bytes into a single HTTP POST.

The request is started as soon as the sink is opened. Its body is an async
generator fed from a one-slot queue, so `write` only returns once aiohttp has
taken the previous chunk for the socket. That hand-off is what carries
backpressure from the remote connection back to whoever is writing.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, AsyncIterator, Optional, Type

import aiohttp

from motion_sync.exceptions import (
    ConnectError,
    MotionSyncError,
    ParseError,
    TransferError,
)
from motion_sync.pool import ConnectionPool, HostConnection, request_target

logger: logging.Logger = logging.getLogger(__name__)

UPLOAD_HEADERS = {"content-type": "application/octet-stream"}


@dataclass(frozen=True)
class UploadResult:
    """
    The outcome of one completed upload.

    Attributes:
        response (Any): The parsed JSON response body.
        bytes (int): Number of body bytes written.
        milliseconds (int): Time from connect to full response, rounded.
        bytes_per_second (int): Throughput over that interval, rounded.
    """

    response: Any
    bytes: int
    milliseconds: int
    bytes_per_second: int

    @classmethod
    def measure(cls, response: Any, num_bytes: int, elapsed_ns: int) -> "UploadResult":
        """
        Derives timing and throughput figures from a measured interval.

        Args:
            response (Any): The parsed response body.
            num_bytes (int): Bytes sent.
            elapsed_ns (int): Nanoseconds between connect and response completion.

        Returns:
            UploadResult: The result with rounded figures.
        """
        elapsed_s: float = elapsed_ns / 1e9
        return cls(
            response=response,
            bytes=num_bytes,
            milliseconds=round(elapsed_ns / 1e6),
            bytes_per_second=round(num_bytes / elapsed_s) if elapsed_ns > 0 else 0,
        )


class UploadSink:
    """
    Streams written bytes as the body of a POST and collects the JSON reply.

    Usage::

        async with UploadSink(pool, url) as sink:
            async for chunk in source:
                await sink.write(chunk)
        result = sink.result()

    Leaving the block normally finalizes the upload; leaving it with an
    exception aborts the request and discards its connection.
    """

    def __init__(self, pool: ConnectionPool, url: str) -> None:
        """
        Args:
            pool (ConnectionPool): Where the connection is borrowed from.
            url (str): The absolute URL to POST to.
        """
        self._pool: ConnectionPool = pool
        self._url: str = url
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=1)
        self._connected: asyncio.Event = asyncio.Event()
        self._connection: Optional[HostConnection] = None
        self._request_task: Optional[asyncio.Task[Any]] = None
        self._connected_ns: Optional[int] = None
        self._completed_ns: Optional[int] = None
        self._response: Any = None
        self._finished: bool = False
        self.bytes: int = 0

    async def open(self) -> None:
        """
        Starts the POST and waits until the connection is established.

        Raises:
            ConnectError: If the connection could not be made.
        """
        if self._request_task is not None:
            raise TransferError(f"Upload sink for '{self._url}' is already open.")
        self._connection = await self._pool.acquire(self._url)
        self._request_task = asyncio.create_task(self._send(self._connection))
        self._request_task.add_done_callback(self._on_request_done)

        connected: asyncio.Task[Any] = asyncio.create_task(self._connected.wait())
        done, _ = await asyncio.wait(
            {connected, self._request_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if connected not in done:
            connected.cancel()
            failure: MotionSyncError = self._failure()
            await self.abort()
            raise failure

    async def write(self, chunk: bytes) -> None:
        """
        Appends a chunk to the request body, suspending until it is taken.

        Args:
            chunk (bytes): The next bytes of the body.
        """
        self._ensure_writable()
        if not chunk:
            return
        await self._queue.put(chunk)
        self.bytes += len(chunk)

    async def finalize(self) -> None:
        """
        Ends the request body and waits for the complete, parsed response.

        The connection goes back to the pool on success and is discarded on
        failure.
        """
        try:
            self._ensure_writable()
            await self._queue.put(None)
            self._response = await self._request_task
        except BaseException:
            await self.abort()
            raise
        self._finished = True
        self._pool.release(self._url, self._connection)
        self._connection = None

    async def abort(self) -> None:
        """Cancels an in-flight request and discards its connection."""
        task: Optional[asyncio.Task[Any]] = self._request_task
        if task is not None:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._connection is not None:
            connection: HostConnection = self._connection
            self._connection = None
            await self._pool.discard(connection)

    def result(self) -> UploadResult:
        """
        Returns the response and transfer statistics of a finalized upload.

        Raises:
            TransferError: If the upload has not completed.
        """
        if not self._finished:
            raise TransferError(f"Upload to '{self._url}' has not completed.")
        return UploadResult.measure(
            self._response,
            self.bytes,
            self._completed_ns - self._connected_ns,
        )

    async def __aenter__(self) -> "UploadSink":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            await self.finalize()
        else:
            await self.abort()

    async def _send(self, connection: HostConnection) -> Any:
        """Performs the request; runs as a task alongside the writers."""
        try:
            async with connection.session.post(
                request_target(self._url),
                data=self._body(),
                headers=UPLOAD_HEADERS,
            ) as response:
                payload: bytes = await response.read()
                self._completed_ns = time.perf_counter_ns()
                if response.status >= 400:
                    logger.warning(
                        f"Upload to '{self._url}' returned HTTP {response.status}"
                    )
        except (aiohttp.ClientError, OSError) as e:
            if not self._connected.is_set():
                raise ConnectError(f"Could not connect to '{self._url}': {e}") from e
            raise TransferError(
                f"Upload to '{self._url}' failed after {self.bytes} bytes: {e}"
            ) from e

        try:
            return json.loads(payload)
        except ValueError as e:
            raise ParseError(
                f"Upload to '{self._url}' returned a non-JSON response: {e}"
            ) from e

    async def _body(self) -> AsyncIterator[bytes]:
        # aiohttp only starts pulling the body once the connection is up.
        self._connected_ns = time.perf_counter_ns()
        self._connected.set()
        while True:
            chunk: Optional[bytes] = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    def _on_request_done(self, task: asyncio.Task[Any]) -> None:
        # Release any writer still waiting on a slot nobody will read.
        while not self._queue.empty():
            self._queue.get_nowait()

    def _ensure_writable(self) -> None:
        if self._request_task is None:
            raise TransferError(f"Upload sink for '{self._url}' is not open.")
        if self._request_task.done():
            raise self._failure()

    def _failure(self) -> MotionSyncError:
        """Describes why the request task ended before the body was complete."""
        task: asyncio.Task[Any] = self._request_task
        if task.cancelled():
            return TransferError(f"Upload to '{self._url}' was cancelled.")
        error: Optional[BaseException] = task.exception()
        if isinstance(error, MotionSyncError):
            return error
        if error is not None:
            return TransferError(f"Upload to '{self._url}' failed: {error}")
        return TransferError(
            f"'{self._url}' responded before the upload body was complete."
        )
