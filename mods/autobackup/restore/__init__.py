"""
Restore module for AutoBackup.

This module reconciles operator-supplied snapshot files back into the live
record store at startup:
- Staging directory scan (ProfilesToRestore)
- Collision replace against already-loaded records
- Relocation to the processed directory (RestoredProfiles)

Invariants:
    - Reconciliation runs once, before capture events are accepted
    - Invalid candidates stay in staging so they can be fixed and retried
"""

from .reconciler import InstalledRecord, RestoreFailure, RestoreReconciler, RestoreReport

__all__ = ["RestoreReconciler", "RestoreReport", "InstalledRecord", "RestoreFailure"]
