# src/motion_sync/exceptions.py
"""Custom exceptions for the motion-sync application."""


class MotionSyncError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(MotionSyncError):
    """Raised for configuration-related issues."""

    pass


class TransferError(MotionSyncError):
    """Raised when an object upload fails. Partial uploads are never resumed."""

    pass


class ConnectError(TransferError):
    """Raised when the transport to the storage service fails."""

    pass


class ProtocolError(MotionSyncError):
    """Raised when a response from the storage service is structurally invalid."""

    pass


class ParseError(MotionSyncError):
    """Raised when a response body is not valid JSON."""

    pass


class IdentityMismatchError(MotionSyncError):
    """
    Raised when a status report describes a different object than requested.

    This indicates corrupt bookkeeping on one side and is fatal for the process.
    """

    pass


class MalformedReplicaError(MotionSyncError):
    """Raised when a status report has a replica or piece of the wrong shape."""

    pass


class IncompleteStreamError(MotionSyncError):
    """Raised when a digest is requested before its stream has been drained."""

    pass


class SourceError(MotionSyncError):
    """Raised when the source bucket cannot be enumerated completely."""

    pass


class StoreError(MotionSyncError):
    """Raised when the status file exists but cannot be loaded."""

    pass
