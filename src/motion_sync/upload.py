# src/motion_sync/upload.py
"""
End-to-end upload of one object: source stream -> digest -> HTTP POST body.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable

from motion_sync.digest import DigestTap
from motion_sync.exceptions import MotionSyncError, TransferError
from motion_sync.pool import ConnectionPool
from motion_sync.sink import UploadResult, UploadSink

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    """
    Everything learned from uploading one object.

    Attributes:
        digest (str): Hex SHA2-256 of the bytes sent.
        response (Any): The service's parsed JSON response.
        bytes (int): Number of bytes sent.
        bytes_per_second (int): Upload throughput.
        milliseconds (int): Upload duration, from connect to response.
    """

    digest: str
    response: Any
    bytes: int
    bytes_per_second: int
    milliseconds: int


async def post_blob(
    pool: ConnectionPool,
    endpoint_url: str,
    source: AsyncIterable[bytes],
) -> UploadOutcome:
    """
    Streams a source to the storage service, hashing it on the way.

    The source is only read as fast as the connection accepts bytes. A failure
    anywhere aborts the request; nothing is resumed, so a retry has to start
    again from the beginning of the source.

    Args:
        pool (ConnectionPool): Pool to borrow the upload connection from.
        endpoint_url (str): The URL to POST the object to.
        source (AsyncIterable[bytes]): The object's bytes, in order.

    Returns:
        UploadOutcome: The digest, response and transfer statistics.

    Raises:
        TransferError: If reading, sending or receiving fails.
        ParseError: If the response is not JSON.
    """
    tap: DigestTap = DigestTap(source)
    sink: UploadSink = UploadSink(pool, endpoint_url)
    try:
        async with sink:
            async for chunk in tap:
                await sink.write(chunk)
    except MotionSyncError:
        raise
    except Exception as e:
        raise TransferError(
            f"Upload to '{endpoint_url}' failed after {tap.bytes} bytes: {e}"
        ) from e

    result: UploadResult = sink.result()
    return UploadOutcome(
        digest=tap.hexdigest(),
        response=result.response,
        bytes=result.bytes,
        bytes_per_second=result.bytes_per_second,
        milliseconds=result.milliseconds,
    )
