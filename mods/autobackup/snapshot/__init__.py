"""
Snapshot module for AutoBackup.

This module writes point-in-time copies of an owner's record when a
lifecycle event fires:
- One directory per owner, named <owner_name>-<owner_id>
- One timestamp-prefixed file per capture
- Retention applied after every write

Invariants:
    - Snapshots are immutable once written
    - Snapshot names sort in capture order
"""

from .writer import CaptureResult, CaptureStatus, SnapshotWriter

__all__ = ["SnapshotWriter", "CaptureResult", "CaptureStatus"]
