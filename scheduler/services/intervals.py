"""Half-open interval comparison for time ranges on a single date."""

from __future__ import annotations

from datetime import time


def overlaps(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Return True when ``[a_start, a_end)`` and ``[b_start, b_end)`` intersect.

    Touching boundaries (one range ending exactly when the other starts) do
    not overlap.  This single test covers a range starting inside the other,
    ending inside it, or containing it entirely.
    """
    return a_start < b_end and b_start < a_end
