# tests/conftest.py
"""
Pytest configuration and fixtures for the motion-sync test suite.

This module sets up the testing environment, including:
- An in-process fake of the Motion blob API, served by aiohttp's `TestServer`.
- An isolated `ConnectionPool` per test.
- Fake aiobotocore S3 client objects for the source collaborator.
- Helpers for building records and status reports.
"""

import asyncio
import hashlib
from pathlib import Path
from typing import (
    Any,
    AsyncGenerator,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
)

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from motion_sync.pool import ConnectionPool
from motion_sync.records import ObjectRecord
from motion_sync.store import StatusStore

BLOB_PATH: str = "/v0/blob"
SLOW_PATH: str = "/v0/slow"


class FakeMotion:
    """
    A minimal stand-in for the Motion blob API.

    Uploads are stored in memory under sequential ids. Status responses are
    whatever a test puts into `statuses`. `SLOW_PATH` drains its body in small
    reads with a pause between them, counting bytes in `received`.
    """

    def __init__(self) -> None:
        self.uploads: Dict[str, bytes] = {}
        self.content_types: List[Optional[str]] = []
        self.peers: List[Any] = []
        self.statuses: Dict[str, Tuple[int, Any]] = {}
        self.upload_delay: float = 0.0
        self.in_flight: int = 0
        self.max_in_flight: int = 0
        self.received: int = 0

    def app(self) -> web.Application:
        app: web.Application = web.Application()
        app.router.add_post(BLOB_PATH, self.handle_upload)
        app.router.add_get(BLOB_PATH + "/{id}/status", self.handle_status)
        app.router.add_post(SLOW_PATH, self.handle_slow_upload)
        app.router.add_post("/v0/garbage", self.handle_garbage)
        app.router.add_post("/v0/anonymous", self.handle_anonymous)
        return app

    async def handle_upload(self, request: web.Request) -> web.Response:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            body: bytes = await request.read()
            await asyncio.sleep(self.upload_delay)
        finally:
            self.in_flight -= 1
        object_id: str = f"obj-{len(self.uploads) + 1}"
        self.uploads[object_id] = body
        self.content_types.append(request.headers.get("Content-Type"))
        self.peers.append(request.transport.get_extra_info("peername"))
        return web.json_response({"id": object_id})

    async def handle_slow_upload(self, request: web.Request) -> web.Response:
        async for chunk in request.content.iter_chunked(64 * 1024):
            self.received += len(chunk)
            await asyncio.sleep(0.002)
        return web.json_response({"id": "slow", "received": self.received})

    async def handle_status(self, request: web.Request) -> web.Response:
        object_id: str = request.match_info["id"]
        status, body = self.statuses.get(object_id, (404, {"error": "not found"}))
        if isinstance(body, str):
            return web.Response(status=status, text=body)
        return web.json_response(body, status=status)

    async def handle_garbage(self, request: web.Request) -> web.Response:
        await request.read()
        return web.Response(text="<html>definitely not json</html>")

    async def handle_anonymous(self, request: web.Request) -> web.Response:
        await request.read()
        return web.json_response({"stored": True})


@pytest_asyncio.fixture
async def motion() -> AsyncGenerator[Tuple[FakeMotion, TestServer], None]:
    """
    Run a `FakeMotion` for the duration of one test.

    Yields:
        Tuple[FakeMotion, TestServer]: The fake and the server exposing it.
    """
    fake: FakeMotion = FakeMotion()
    server: TestServer = TestServer(fake.app())
    await server.start_server()
    try:
        yield fake, server
    finally:
        await server.close()


@pytest.fixture
def blob_url(motion: Tuple[FakeMotion, TestServer]) -> str:
    """The upload endpoint URL of the running fake."""
    return str(motion[1].make_url(BLOB_PATH))


@pytest_asyncio.fixture
async def pool() -> AsyncGenerator[ConnectionPool, None]:
    """An isolated connection pool, closed after the test."""
    async with ConnectionPool() as connection_pool:
        yield connection_pool


@pytest.fixture
def store(tmp_path: Path) -> StatusStore:
    """An empty status store backed by a temporary file."""
    status_store: StatusStore = StatusStore(tmp_path / "status.json")
    status_store.load()
    return status_store


def make_record(object_id: str = "X", source_key: str = "data/x.bin") -> ObjectRecord:
    """Build a freshly uploaded record with no replication state."""
    return ObjectRecord(
        id=object_id,
        source_key=source_key,
        byte_count=3,
        digest=hashlib.sha256(b"abc").hexdigest(),
        upload_throughput=1000,
        uploaded_at="2024-01-01T00:00:00.000Z",
    )


def make_report(object_id: str, *pieces: Tuple[str, str, str]) -> Dict[str, Any]:
    """Build a status report from `(provider_id, piece_id, status)` triples."""
    replicas: Dict[str, List[Dict[str, str]]] = {}
    for provider_id, piece_id, status in pieces:
        replicas.setdefault(provider_id, []).append(
            {"pieceId": piece_id, "status": status}
        )
    return {
        "id": object_id,
        "replicas": [
            {"providerId": provider_id, "pieces": provider_pieces}
            for provider_id, provider_pieces in replicas.items()
        ],
    }


async def iter_chunks(*chunks: bytes) -> AsyncIterator[bytes]:
    """An async source yielding the given chunks."""
    for chunk in chunks:
        yield chunk


class FakeBody:
    """Mimics aiobotocore's `StreamingBody`."""

    def __init__(self, data: bytes) -> None:
        self._data: bytes = data
        self.closed: bool = False

    async def __aenter__(self) -> "FakeBody":
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.closed = True

    async def iter_chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        for start in range(0, len(self._data), chunk_size):
            yield self._data[start : start + chunk_size]


class FakePaginator:
    def __init__(self, pages: List[Dict[str, Any]]) -> None:
        self._pages: List[Dict[str, Any]] = pages
        self.kwargs: Dict[str, Any] = {}

    def paginate(self, **kwargs: Any) -> AsyncIterator[Dict[str, Any]]:
        self.kwargs = kwargs
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Dict[str, Any]]:
        for page in self._pages:
            yield page


class FakeS3Client:
    """Just enough of an aiobotocore S3 client for the source helpers."""

    def __init__(
        self,
        objects: Dict[str, bytes],
        pages: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.objects: Dict[str, bytes] = objects
        self.bodies: List[FakeBody] = []
        if pages is None:
            pages = [
                {
                    "Contents": [{"Key": key} for key in objects],
                    "IsTruncated": False,
                }
            ]
        self.paginator: FakePaginator = FakePaginator(pages)

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        return self.paginator

    async def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        body: FakeBody = FakeBody(self.objects[Key])
        self.bodies.append(body)
        return {"Body": body}


@pytest.fixture
def record_factory() -> Callable[..., ObjectRecord]:
    """Provide `make_record` as a factory fixture."""
    return make_record


@pytest.fixture
def report_factory() -> Callable[..., Dict[str, Any]]:
    """Provide `make_report` as a factory fixture."""
    return make_report


@pytest.fixture
def chunks() -> Callable[..., AsyncIterator[bytes]]:
    """Provide `iter_chunks` as a factory fixture."""
    return iter_chunks


@pytest.fixture
def s3_client_factory() -> Callable[..., FakeS3Client]:
    """Provide a factory for fake source clients."""
    return FakeS3Client
