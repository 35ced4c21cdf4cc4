# src/motion_sync/reconcile.py
"""
Folds a point-in-time replication report into an object's long-lived record.

The merge only ever adds: pieces missing from a later report are kept, and each
piece's update trail is append-only. Reports are snapshots, so the absence of a
piece is not evidence that it was deleted.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from motion_sync.exceptions import IdentityMismatchError, MalformedReplicaError
from motion_sync.records import ObjectRecord, PieceRecord, PieceUpdate, utc_now

logger: logging.Logger = logging.getLogger(__name__)

ReportedPiece = Tuple[str, str, str]


def _reported_pieces(object_id: str, replicas: List[Any]) -> Iterator[ReportedPiece]:
    """
    Yields `(provider_id, piece_id, status)` for every piece in a report.

    Raises:
        MalformedReplicaError: On the first replica or piece of the wrong shape.
    """
    for replica in replicas:
        if not isinstance(replica, Mapping):
            raise MalformedReplicaError(f"Replica for {object_id} is not an object")
        provider_id: Any = replica.get("providerId")
        if not isinstance(provider_id, str):
            raise MalformedReplicaError(f"Replica for {object_id} has no providerId")
        pieces: Any = replica.get("pieces")
        if not isinstance(pieces, list):
            raise MalformedReplicaError(
                f"Replica for {object_id} has no pieces on {provider_id}"
            )
        for piece in pieces:
            if not isinstance(piece, Mapping):
                raise MalformedReplicaError(
                    f"Piece for {object_id} on {provider_id} is not an object"
                )
            piece_id: Any = piece.get("pieceId")
            if not isinstance(piece_id, str):
                raise MalformedReplicaError(
                    f"Piece for {object_id} has no pieceId on {provider_id}"
                )
            status: Any = piece.get("status")
            if not isinstance(status, str):
                raise MalformedReplicaError(
                    f"Piece {piece_id} for {object_id} has no status on {provider_id}"
                )
            yield provider_id, piece_id, status


def reconcile(
    record: ObjectRecord,
    report: Any,
    now: Callable[[], str] = utc_now,
) -> bool:
    """
    Merges a status report into a record in place.

    The report is validated in full before the record is touched, so a
    malformed report leaves the record exactly as it was.

    Args:
        record (ObjectRecord): The record to update.
        report (Any): The parsed status response for the record's id.
        now (Callable[[], str]): Source of timestamps for new state.

    Returns:
        bool: True if anything in the record changed.

    Raises:
        IdentityMismatchError: If the report is for a different object.
        MalformedReplicaError: If a replica or piece has the wrong shape.
    """
    report_id: Any = report.get("id") if isinstance(report, Mapping) else None
    if report_id != record.id:
        raise IdentityMismatchError(
            f"Status id does not match: got [{report_id}], expected [{record.id}]"
        )

    replicas: Any = report.get("replicas")
    if not isinstance(replicas, list):
        return False  # not replicated yet

    observed: List[ReportedPiece] = list(_reported_pieces(record.id, replicas))
    timestamp: str = now()
    changed: bool = False

    if record.replicas_at is None:
        record.replicas_at = timestamp
        changed = True
    if record.pieces is None:
        record.pieces = []
        changed = True

    known: Dict[Tuple[str, str], PieceRecord] = {
        piece.key: piece for piece in record.pieces
    }
    for provider_id, piece_id, status in observed:
        piece: Optional[PieceRecord] = known.get((provider_id, piece_id))
        if piece is None:
            piece = PieceRecord(provider_id=provider_id, piece_id=piece_id, status=status)
            record.pieces.append(piece)
            known[piece.key] = piece
            changed = True
        elif piece.status != status:
            logger.debug(
                f"Piece {piece_id} of {record.id} on {provider_id}: "
                f"{piece.status} -> {status}"
            )
            piece.updates.append(PieceUpdate(piece.status, status, timestamp))
            piece.status = status
            changed = True

    return changed
