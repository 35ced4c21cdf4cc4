# src/motion_sync/store.py
"""
Handles persistent progress tracking in a JSON status file.

The whole map of object id to record is held in memory for the life of the
process and rewritten in full on every commit. A commit writes a temporary
file next to the status file and renames it over the original, so the
status file on disk is always a complete document: either the previous one
or the new one.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from motion_sync.exceptions import StoreError
from motion_sync.records import ObjectRecord

logger: logging.Logger = logging.getLogger(__name__)


def _serialize(records: Dict[str, ObjectRecord]) -> str:
    """One record per line, in insertion order, so the file diffs cleanly."""
    lines: List[str] = [
        f"{json.dumps(object_id)}: {json.dumps(record.to_dict())}"
        for object_id, record in records.items()
    ]
    if not lines:
        return "{}\n"
    return "{\n" + ",\n".join(lines) + "\n}\n"


def _write_atomically(path: Path, temp_path: Path, content: str) -> None:
    with open(temp_path, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, path)


class StatusStore:
    """
    The set of uploaded objects and their replication state.

    Records are added after each upload and mutated in place by
    reconciliation. `dirty` is set by additions and by `mark_changed` and
    cleared when a commit starts.
    """

    def __init__(self, path: Path) -> None:
        """
        Args:
            path (Path): The canonical status file.
        """
        self._path: Path = path
        self._temp_path: Path = path.with_name(f".{path.name}.tmp")
        self._records: Dict[str, ObjectRecord] = {}
        self._dirty: bool = False
        self._commit_lock: asyncio.Lock = asyncio.Lock()
        self._pending_write: Optional["asyncio.Future[None]"] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        return self._dirty

    def load(self) -> None:
        """
        Reads the status file into memory. A missing file means an empty store.

        Raises:
            StoreError: If the file exists but is not a valid status document.
        """
        try:
            text: str = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No status file at '{self._path}', starting empty.")
            self._records = {}
            return
        except OSError as e:
            raise StoreError(f"Could not read status file '{self._path}': {e}") from e

        try:
            data: Any = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("top level is not an object")
            self._records = {
                object_id: ObjectRecord.from_dict(entry)
                for object_id, entry in data.items()
            }
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Invalid status file '{self._path}': {e}") from e
        self._dirty = False
        logger.info(f"Loaded {len(self._records)} records from '{self._path}'.")

    def add(self, record: ObjectRecord) -> None:
        """
        Adds a newly uploaded object. Ids are assigned by the storage service
        and must be unique.

        Args:
            record (ObjectRecord): The record to add.
        """
        if record.id in self._records:
            raise StoreError(
                f"Duplicate object id '{record.id}' for '{record.source_key}' "
                f"(already recorded for '{self._records[record.id].source_key}')"
            )
        self._records[record.id] = record
        self._dirty = True

    def get(self, object_id: str) -> Optional[ObjectRecord]:
        return self._records.get(object_id)

    def has_source_key(self, source_key: str) -> bool:
        """Whether an object with this source key has already been uploaded."""
        return any(r.source_key == source_key for r in self._records.values())

    def records(self) -> List[ObjectRecord]:
        """A snapshot list of all records, safe to iterate while adding."""
        return list(self._records.values())

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def mark_changed(self) -> None:
        """Flags an in-place change to a record so the next commit writes it."""
        self._dirty = True

    async def commit(self) -> None:
        """
        Atomically rewrites the status file with the in-memory state.

        Commits are serialized. A commit whose caller was cancelled keeps
        writing in its worker thread, and the next commit waits for it before
        touching the temporary file.

        Raises:
            StoreError: If the file could not be written.
        """
        async with self._commit_lock:
            if self._pending_write is not None:
                await asyncio.wait([self._pending_write])
            content: str = _serialize(self._records)
            self._dirty = False
            loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
            self._pending_write = loop.run_in_executor(
                None, _write_atomically, self._path, self._temp_path, content
            )
            try:
                await asyncio.shield(self._pending_write)
            except asyncio.CancelledError:
                self._dirty = True
                raise
            except OSError as e:
                self._dirty = True
                raise StoreError(
                    f"Could not write status file '{self._path}': {e}"
                ) from e
        logger.info(f"Wrote {len(self._records)} records to '{self._path}'.")
