# src/motion_sync/digest.py
"""
A pass-through stream stage that computes a SHA2-256 digest as bytes flow by.
"""

import hashlib
from typing import AsyncIterable, AsyncIterator

from motion_sync.exceptions import IncompleteStreamError


class DigestTap:
    """
    Wraps an async byte-chunk source, yielding every chunk unchanged.

    Each chunk is fed into a running SHA2-256 before it is handed downstream,
    so the digest covers exactly the bytes consumers saw, in order. The digest
    can only be read once the source is exhausted.
    """

    def __init__(self, source: AsyncIterable[bytes]) -> None:
        """
        Args:
            source (AsyncIterable[bytes]): The stream of chunks to pass through.
        """
        self._source: AsyncIterable[bytes] = source
        self._hash = hashlib.sha256()
        self._drained: bool = False
        self.bytes: int = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._source:
            self._hash.update(chunk)
            self.bytes += len(chunk)
            yield chunk
        self._drained = True

    def hexdigest(self) -> str:
        """
        Returns the hex SHA2-256 of every byte that passed through.

        Raises:
            IncompleteStreamError: If the source has not been fully consumed.
        """
        if not self._drained:
            raise IncompleteStreamError(
                f"Digest requested after {self.bytes} bytes, before end of stream."
            )
        return self._hash.hexdigest()
