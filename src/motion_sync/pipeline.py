# src/motion_sync/pipeline.py
"""Core orchestration logic for the motion-sync pipeline."""

import asyncio
import functools
import logging
from typing import TYPE_CHECKING, List, Optional

from aiobotocore.session import AioSession, get_session
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from motion_sync.config import Config
from motion_sync.exceptions import ProtocolError
from motion_sync.poller import StatusPoller
from motion_sync.pool import ConnectionPool
from motion_sync.records import ObjectRecord
from motion_sync.source import list_object_keys, open_object_stream
from motion_sync.status import fetch_status
from motion_sync.store import StatusStore
from motion_sync.upload import UploadOutcome, post_blob

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)


def _format_rate(bytes_per_second: int) -> str:
    return f"{bytes_per_second / 1024**2:.2f} MiB/s"


async def store_object(
    pool: ConnectionPool,
    endpoint_url: str,
    source_client: "S3Client",
    bucket: str,
    key: str,
    chunk_size: int = 1024 * 1024,
) -> ObjectRecord:
    """
    Streams one object from the source bucket into Motion.

    Args:
        pool (ConnectionPool): Connection pool for the upload.
        endpoint_url (str): The Motion blob endpoint.
        source_client (S3Client): Client for the source bucket.
        bucket (str): The source bucket.
        key (str): The key of the object to upload.
        chunk_size (int): Read size from the source stream.

    Returns:
        ObjectRecord: A fresh record for the uploaded object.

    Raises:
        ProtocolError: If the response carries no string `id`.
    """
    logger.info(f"Storing {key}...")
    outcome: UploadOutcome = await post_blob(
        pool,
        endpoint_url,
        open_object_stream(source_client, bucket, key, chunk_size),
    )
    response = outcome.response
    object_id = response.get("id") if isinstance(response, dict) else None
    if not isinstance(object_id, str):
        raise ProtocolError(f"No id returned for '{key}': {response!r}")

    logger.info(
        f"Stored  {key} as {object_id} "
        f"({outcome.bytes} bytes at {_format_rate(outcome.bytes_per_second)})"
    )
    return ObjectRecord(
        id=object_id,
        source_key=key,
        byte_count=outcome.bytes,
        digest=outcome.digest,
        upload_throughput=outcome.bytes_per_second,
    )


class MotionSyncPipeline:
    """Orchestrates the whole run: upload new objects, then track replication."""

    def __init__(self, config: Config, shutdown_event: asyncio.Event) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            config (Config): The application configuration.
            shutdown_event (asyncio.Event): Event to signal graceful shutdown.
        """
        self._config: Config = config
        self._shutdown_event: asyncio.Event = shutdown_event
        self._session: AioSession = get_session()
        self._store: StatusStore = StatusStore(config.app.status_file)

    @property
    def store(self) -> StatusStore:
        return self._store

    async def run(self) -> None:
        """
        Executes the pipeline until shutdown is requested.

        Uploads run one at a time so each throughput figure belongs to a single
        transfer. Status polling starts immediately and keeps running after the
        uploads are done. Any upload failure ends the run.
        """
        logger.info("Starting motion-sync pipeline.")
        self._store.load()

        async with ConnectionPool() as pool:
            poller: StatusPoller = StatusPoller(
                self._store,
                functools.partial(fetch_status, pool, self._config.endpoint_url),
                self._config.app.tick_interval_s,
                self._shutdown_event,
            )
            poller_task: Optional[asyncio.Task[None]] = None
            try:
                async with self._session.create_client(
                    "s3", **self._config.source.as_boto_dict()
                ) as source_client:
                    keys: List[str] = await list_object_keys(
                        source_client, self._config.source.bucket
                    )
                    poller_task = asyncio.create_task(poller.run())
                    await self._store_objects(pool, source_client, keys, poller_task)

                if not self._shutdown_event.is_set() and not poller_task.done():
                    logger.info("All objects stored. Tracking replication status.")
                await poller_task
            finally:
                if poller_task is not None and not poller_task.done():
                    poller_task.cancel()
                    await asyncio.gather(poller_task, return_exceptions=True)
                if self._store.dirty:
                    await self._store.commit()

        logger.info("Motion-sync pipeline stopped.")

    async def _store_objects(
        self,
        pool: ConnectionPool,
        source_client: "S3Client",
        keys: List[str],
        poller_task: "asyncio.Task[None]",
    ) -> None:
        """
        Uploads every key that has no record yet, serially.

        Args:
            pool (ConnectionPool): Connection pool for the uploads.
            source_client (S3Client): Client for the source bucket.
            keys (List[str]): All keys in the source bucket.
            poller_task (asyncio.Task[None]): Stops the uploads if it fails.
        """
        pending: List[str] = [k for k in keys if not self._store.has_source_key(k)]
        if not pending:
            logger.info("All objects in the bucket are already stored.")
            return
        logger.info(
            f"Found {len(pending)} objects to store "
            f"({len(keys) - len(pending)} already stored)."
        )

        progress: Progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            transient=True,
        )
        with progress:
            task_id: TaskID = progress.add_task("Storing...", total=len(pending))
            for key in pending:
                if self._shutdown_event.is_set():
                    logger.warning("Shutdown initiated, stopping uploads.")
                    return
                if poller_task.done():
                    return  # the poller failed; its error surfaces from run()
                record: ObjectRecord = await store_object(
                    pool,
                    self._config.endpoint_url,
                    source_client,
                    self._config.source.bucket,
                    key,
                    self._config.app.chunk_size,
                )
                self._store.add(record)
                progress.update(task_id, advance=1)
