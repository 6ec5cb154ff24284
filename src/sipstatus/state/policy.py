"""Visibility and ordering policy.

This module contains no locking or storage. The store, the broadcaster and
the stream session all consult it so the three paths cannot drift apart.
"""

from __future__ import annotations

from functools import cmp_to_key

from sipstatus._constants import PRIVATE_EXTENSION_MAX_LEN


def is_visible(extension: str, *, authenticated: bool) -> bool:
    """Short extensions are for authenticated viewers only."""
    if authenticated:
        return True
    return len(extension) > PRIVATE_EXTENSION_MAX_LEN


def compare_extensions(left: str, right: str) -> int:
    """Numeric comparison when both ids parse as integers, lexicographic otherwise."""
    try:
        a: int | str = int(left)
        b: int | str = int(right)
    except ValueError:
        a, b = left, right
    return (a > b) - (a < b)  # type: ignore[operator]


extension_sort_key = cmp_to_key(compare_extensions)
