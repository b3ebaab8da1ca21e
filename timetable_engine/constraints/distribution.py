"""
Subject distribution across the week.

For a requirement with ``spread`` distribution, every pair of its
occurrences landing on the same day adds one unit of ``subject_spread``
penalty. A day holding n occurrences therefore costs n * (n - 1) / 2.
"""

from __future__ import annotations

from typing import Sequence


def same_day_pairs(count: int) -> int:
    return count * (count - 1) // 2


def spread_penalty(day_counts: Sequence[int]) -> int:
    """Same-day pairs summed over the week."""
    return sum(same_day_pairs(n) for n in day_counts)
