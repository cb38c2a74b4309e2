"""
Retention module for AutoBackup.

Bounds the number of files kept in a directory by evicting the oldest first.
Used after every snapshot (per-owner directory) and once after each restore
pass (processed directory).
"""

from .enforcer import RetentionEnforcer, RetentionOrder, enforce_retention

__all__ = ["RetentionEnforcer", "RetentionOrder", "enforce_retention"]
