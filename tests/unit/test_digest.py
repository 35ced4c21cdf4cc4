# tests/unit/test_digest.py
"""Unit tests for the `DigestTap` pass-through stage."""

import hashlib
from typing import AsyncIterator, Callable, List, Tuple

import pytest

from motion_sync.digest import DigestTap
from motion_sync.exceptions import IncompleteStreamError


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "parts",
    [
        (),
        (b"",),
        (b"hello world",),
        (b"a" * 65536, b"", b"b" * 3, bytes(range(256))),
    ],
)
async def test_digest_tap_passes_bytes_through_and_hashes_them(
    parts: Tuple[bytes, ...],
    chunks: Callable[..., AsyncIterator[bytes]],
) -> None:
    """
    Tests that every chunk comes out unchanged, in order, and the digest
    equals SHA2-256 of their concatenation.

    Args:
        parts (Tuple[bytes, ...]): The chunks fed into the tap.
        chunks (Callable): Factory for async chunk sources.
    """
    tap: DigestTap = DigestTap(chunks(*parts))

    seen: List[bytes] = [chunk async for chunk in tap]

    assert seen == list(parts)
    assert tap.hexdigest() == hashlib.sha256(b"".join(parts)).hexdigest()
    assert tap.bytes == sum(len(p) for p in parts)


@pytest.mark.asyncio
async def test_digest_before_end_of_stream_raises(
    chunks: Callable[..., AsyncIterator[bytes]],
) -> None:
    """
    Tests that reading the digest of a partially consumed stream fails.

    Arrange:
        - Wrap a three-chunk source.
    Act:
        - Consume only the first chunk.
    Assert:
        - `hexdigest` raises `IncompleteStreamError`.
    """
    tap: DigestTap = DigestTap(chunks(b"one", b"two", b"three"))

    with pytest.raises(IncompleteStreamError):
        tap.hexdigest()

    async for _ in tap:
        break

    with pytest.raises(IncompleteStreamError, match="after 3 bytes"):
        tap.hexdigest()
