"""
CLI tools for AutoBackup administration.

This module provides command-line tools for:
- restore: Install staged restore files into the profiles directory
- capture: Take a snapshot of one profile
- prune: Apply retention to a directory

Invariants:
    - Tools work offline (no running host required)
    - Operations are safe to re-run
"""

from .cli import AutoBackupCLI

__all__ = ["AutoBackupCLI"]
