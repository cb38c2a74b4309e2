"""
Owner exclusion filter.

Synthetic owners (headless/automated clients) share a name prefix and never
get snapshots. The restore path does not consult this filter: an operator
asking for a restore is always honored.
"""

from __future__ import annotations

from collections.abc import Iterable


class ExclusionFilter:
    """Prefix predicate over owner names.

    Example:
        >>> f = ExclusionFilter(("headless_",))
        >>> f.is_excluded("headless_7f3a")
        True
        >>> f.is_excluded("alice")
        False
    """

    def __init__(self, prefixes: Iterable[str] = ("headless_",)) -> None:
        self.prefixes = tuple(p for p in prefixes if p)

    def is_excluded(self, owner_name: str) -> bool:
        return owner_name.startswith(self.prefixes) if self.prefixes else False
