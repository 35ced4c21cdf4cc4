# src/motion_sync/status.py
"""Fetches replication status for a previously uploaded object."""

import json
import logging
from typing import Any

import aiohttp

from motion_sync.exceptions import ConnectError, ParseError
from motion_sync.pool import ConnectionPool, HostConnection, request_target

logger: logging.Logger = logging.getLogger(__name__)


def status_url(endpoint_url: str, object_id: str) -> str:
    """Returns `{endpoint_url}/{object_id}/status`."""
    return f"{endpoint_url.rstrip('/')}/{object_id}/status"


async def fetch_status(
    pool: ConnectionPool,
    endpoint_url: str,
    object_id: str,
) -> Any:
    """
    Queries the storage service for an object's replication status.

    A non-200 reply is only logged: the service answers "not ready yet" with
    structured bodies on other status codes, so the body is parsed either way.

    Args:
        pool (ConnectionPool): Pool to borrow the connection from.
        endpoint_url (str): Base URL of the blob endpoint.
        object_id (str): Id the service assigned at upload.

    Returns:
        Any: The parsed JSON body, as sent.

    Raises:
        ConnectError: If the request could not be completed.
        ParseError: If the body is not valid JSON.
    """
    url: str = status_url(endpoint_url, object_id)
    connection: HostConnection = await pool.acquire(url)
    try:
        async with connection.session.get(request_target(url)) as response:
            status: int = response.status
            payload: bytes = await response.read()
    except (aiohttp.ClientError, OSError) as e:
        await pool.discard(connection)
        raise ConnectError(f"Status request for '{object_id}' failed: {e}") from e
    pool.release(url, connection)

    if status != 200:
        logger.warning(f"Status request for '{object_id}' returned HTTP {status}")
    try:
        return json.loads(payload)
    except ValueError as e:
        raise ParseError(
            f"Status for '{object_id}' is not valid JSON (HTTP {status}): {e}"
        ) from e
