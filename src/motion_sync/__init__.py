# src/motion_sync/__init__.py
"""
motion-sync: Streams objects from an S3 bucket into Motion and tracks their
replication.

Each object is uploaded once, with its SHA2-256 computed in flight, and a
record of it is kept in a local JSON status file. The status of every recorded
object is then polled on a timer and each piece's status transitions are
appended to that record.

The primary entry point for programmatic use is the `MotionSyncPipeline` class.
"""

from typing import List

from motion_sync.pipeline import MotionSyncPipeline

__all__: List[str] = ["MotionSyncPipeline"]
