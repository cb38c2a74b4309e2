"""
AutoBackup - lifecycle snapshots and operator restores for per-owner records.

This package implements profile backup management for a game server host:
- Snapshots of an owner's record at lifecycle events (raid start/end, logout)
- Bounded retention of snapshots per owner
- Startup reconciliation of operator-supplied restore files

Architecture:
    ┌──────────────┐     ┌────────────────┐     ┌───────────────────┐
    │ Event source │────▶│ SnapshotWriter │────▶│ RetentionEnforcer │
    │  (host app)  │     └────────────────┘     └───────────────────┘
    └──────────────┘              │
                                  ▼
                     backups/<owner>-<id>/<ts>_<event>.json

    ┌──────────────┐     ┌──────────────────┐     ┌───────────────────┐
    │   Startup    │────▶│ RestoreReconciler│────▶│ RetentionEnforcer │
    └──────────────┘     └──────────────────┘     └───────────────────┘
                                  │
              ProfilesToRestore/*.json ──▶ RecordStore ──▶ RestoredProfiles/

Invariants:
    - The record store is the single source of truth for live records
    - The filesystem holds all snapshot, staging and processed files
    - Reconciliation completes before any capture event is accepted
    - No operation in this package crashes the host process

How to change safely:
    - Snapshot filenames must stay timestamp-prefixed (retention relies on it)
    - Never delete a staged file before its processed copy is verified
"""

from ._version import __version__

__all__ = ["__version__"]
