"""
AutoBackup Test Suite.

This package contains:
- unit/: Unit tests (temporary directories, in-memory record store)
- integration/: Service tests against a file-backed record store
"""
