"""Helpers for the 1-based order columns on questions and options."""

from typing import Iterable, List, Optional


def pick_order(explicit: Optional[int], default: int) -> int:
    """Order for a new sibling: the caller's explicit value, else `default`."""
    return explicit if explicit is not None else default


def resequence(items: Iterable, attr: str) -> List:
    """Rewrite `attr` on `items` to 1..N following their iteration order.

    Callers pass siblings already sorted by `attr`. Returns the items whose
    value actually changed.
    """
    changed = []
    for position, item in enumerate(items, start=1):
        if getattr(item, attr) != position:
            setattr(item, attr, position)
            changed.append(item)
    return changed
