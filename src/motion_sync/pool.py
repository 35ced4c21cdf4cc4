# src/motion_sync/pool.py
"""
Per-origin pool of reusable HTTP connections.

Each pooled `HostConnection` is an `aiohttp.ClientSession` bound to one origin
with a single keep-alive socket, so checking a connection out gives its holder
exclusive use of that socket until it is released.

The pool is deliberately simple: it has no size limit and performs no health
check before handing out an idle connection. A connection that went bad while
idle fails the next request issued through it, and that failure is surfaced to
the caller. Callers discard a connection that failed instead of releasing it.
"""

import logging
from typing import Dict, List, Set
from urllib.parse import urlsplit

import aiohttp

logger: logging.Logger = logging.getLogger(__name__)


def origin_of(url: str) -> str:
    """
    Returns the scheme and host (with port) of a URL, the pool's key.

    Args:
        url (str): Any absolute URL.

    Returns:
        str: e.g. `https://example.com:8443`.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: '{url}'")
    return f"{parts.scheme}://{parts.netloc}"


def request_target(url: str) -> str:
    """Returns the path and query of a URL, as sent on the request line."""
    parts = urlsplit(url)
    target: str = parts.path or "/"
    if parts.query:
        target += f"?{parts.query}"
    return target


class HostConnection:
    """A single keep-alive connection to one origin."""

    def __init__(self, origin: str) -> None:
        self.origin: str = origin
        self.session: aiohttp.ClientSession = aiohttp.ClientSession(
            base_url=origin,
            connector=aiohttp.TCPConnector(limit=1),
            # No timeouts: a hung transfer stalls until the transport gives up.
            timeout=aiohttp.ClientTimeout(total=None),
        )

    @property
    def closed(self) -> bool:
        return self.session.closed

    async def close(self) -> None:
        await self.session.close()

    def __repr__(self) -> str:
        return f"HostConnection({self.origin!r}, closed={self.closed})"


class ConnectionPool:
    """
    A free-list of idle `HostConnection`s per origin.

    `acquire` and `release` never suspend between inspecting and mutating the
    free-list, so two tasks can never be handed the same idle connection.
    """

    def __init__(self) -> None:
        self._idle: Dict[str, List[HostConnection]] = {}
        self._created: Set[HostConnection] = set()

    async def acquire(self, url: str) -> HostConnection:
        """
        Checks out an idle connection for the URL's origin, or opens a new one.

        Args:
            url (str): The destination URL. Only its scheme and host matter.

        Returns:
            HostConnection: A connection owned by the caller until released.
        """
        origin: str = origin_of(url)
        idle: List[HostConnection] = self._idle.get(origin, [])
        while idle:
            connection: HostConnection = idle.pop()
            if not connection.closed:
                return connection
            self._created.discard(connection)
        connection = HostConnection(origin)
        self._created.add(connection)
        logger.debug(f"Opened new connection to {origin}")
        return connection

    def release(self, url: str, connection: HostConnection) -> None:
        """
        Returns a connection to the idle list of the URL's origin.

        Args:
            url (str): The URL the connection was acquired for.
            connection (HostConnection): The connection being checked in.
        """
        self._idle.setdefault(origin_of(url), []).append(connection)

    async def discard(self, connection: HostConnection) -> None:
        """Closes a connection that failed a request instead of returning it."""
        logger.debug(f"Discarding connection to {connection.origin}")
        self._created.discard(connection)
        await connection.close()

    def idle_count(self, url: str) -> int:
        """Number of idle connections held for the URL's origin."""
        return len(self._idle.get(origin_of(url), []))

    def __len__(self) -> int:
        """Number of open connections the pool owns, idle or checked out."""
        return len(self._created)

    async def close(self) -> None:
        """Closes every connection the pool opened, idle or checked out."""
        for connection in self._created:
            await connection.close()
        self._created.clear()
        self._idle.clear()

    async def __aenter__(self) -> "ConnectionPool":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
