# src/motion_sync/source.py
"""Enumerates and streams objects from the source S3-compatible bucket."""

import logging
from typing import TYPE_CHECKING, AsyncIterator, List, Optional

from motion_sync.exceptions import SourceError

if TYPE_CHECKING:
    from aiobotocore.response import StreamingBody
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.paginator import ListObjectsV2Paginator
    from types_aiobotocore_s3.type_defs import (
        GetObjectOutputTypeDef,
        ListObjectsV2OutputTypeDef,
    )

logger: logging.Logger = logging.getLogger(__name__)


async def list_object_keys(client: "S3Client", bucket: str) -> List[str]:
    """
    Lists every key in a bucket, following continuation tokens.

    Args:
        client (S3Client): An aiobotocore S3 client.
        bucket (str): The bucket to list.

    Returns:
        List[str]: All object keys, in listing order.

    Raises:
        SourceError: If the last page still claims the listing is truncated.
    """
    paginator: "ListObjectsV2Paginator" = client.get_paginator("list_objects_v2")
    keys: List[str] = []
    last_page: Optional["ListObjectsV2OutputTypeDef"] = None
    async for page in paginator.paginate(Bucket=bucket):
        keys.extend(obj["Key"] for obj in page.get("Contents", []))
        last_page = page

    if last_page is not None and last_page.get("IsTruncated"):
        raise SourceError(f"Got a truncated list of objects from 's3://{bucket}'")
    logger.info(f"Found {len(keys)} objects in 's3://{bucket}'.")
    return keys


async def open_object_stream(
    client: "S3Client",
    bucket: str,
    key: str,
    chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Yields the body of an object in chunks of at most `chunk_size` bytes.

    Args:
        client (S3Client): An aiobotocore S3 client.
        bucket (str): The source bucket.
        key (str): The object key.
        chunk_size (int): Maximum size of each yielded chunk.
    """
    response: "GetObjectOutputTypeDef" = await client.get_object(Bucket=bucket, Key=key)
    body: "StreamingBody" = response["Body"]
    async with body as stream:
        async for chunk in stream.iter_chunks(chunk_size):
            yield chunk
