# src/motion_sync/records.py
"""
Per-object bookkeeping kept in the status file.

Field names are snake_case in Python and camelCase in the JSON file.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Tuple


def utc_now() -> str:
    """Returns the current UTC time as an ISO-8601 string with millisecond precision."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class PieceUpdate(NamedTuple):
    """One recorded status transition of a piece."""

    previous_status: str
    new_status: str
    timestamp: str


@dataclass
class PieceRecord:
    """
    A provider's piece holding (part of) an object, with its status history.

    Attributes:
        provider_id (str): The storage provider holding the piece.
        piece_id (str): The piece identifier, unique per provider.
        status (str): The most recently reported status.
        updates (List[PieceUpdate]): Append-only trail of status transitions.
    """

    provider_id: str
    piece_id: str
    status: str
    updates: List[PieceUpdate] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.provider_id, self.piece_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "providerId": self.provider_id,
            "pieceId": self.piece_id,
            "status": self.status,
            "updates": [list(update) for update in self.updates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PieceRecord":
        return cls(
            provider_id=data["providerId"],
            piece_id=data["pieceId"],
            status=data["status"],
            updates=[PieceUpdate(*update) for update in data.get("updates") or []],
        )


@dataclass
class ObjectRecord:
    """
    Everything known about one uploaded object.

    Attributes:
        id (str): Id assigned by the storage service; the primary key.
        source_key (str): Key of the object in the source bucket.
        byte_count (int): Size of the uploaded object.
        digest (str): Hex SHA2-256 of the uploaded bytes.
        upload_throughput (int): Upload speed in bytes per second.
        uploaded_at (str): When the upload completed.
        replicas_at (str, optional): When replicas were first reported.
        pieces (List[PieceRecord], optional): Known pieces across providers.
            None only for records loaded without a `pieces` entry.
    """

    id: str
    source_key: str
    byte_count: int
    digest: str
    upload_throughput: int
    uploaded_at: str = field(default_factory=utc_now)
    replicas_at: Optional[str] = None
    pieces: Optional[List[PieceRecord]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "sourceKey": self.source_key,
            "byteCount": self.byte_count,
            "digest": self.digest,
            "uploadThroughput": self.upload_throughput,
            "uploadedAt": self.uploaded_at,
        }
        if self.replicas_at is not None:
            data["replicasAt"] = self.replicas_at
        if self.pieces is not None:
            data["pieces"] = [piece.to_dict() for piece in self.pieces]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectRecord":
        pieces: Optional[List[Dict[str, Any]]] = data.get("pieces")
        return cls(
            id=data["id"],
            source_key=data["sourceKey"],
            byte_count=data["byteCount"],
            digest=data["digest"],
            upload_throughput=data["uploadThroughput"],
            uploaded_at=data["uploadedAt"],
            replicas_at=data.get("replicasAt"),
            pieces=(
                None
                if pieces is None
                else [PieceRecord.from_dict(piece) for piece in pieces]
            ),
        )
