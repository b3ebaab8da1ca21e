"""
Daily workload limits for timetabling.

A teacher's ``preferred_max_per_day`` is a soft cap: each period taught
above it on a day adds one unit of ``teacher_load`` penalty.
"""

from __future__ import annotations

from typing import Optional, Sequence


def load_excess(count: int, cap: Optional[int]) -> int:
    """Periods taught above ``cap`` on one day."""
    if cap is None or count <= cap:
        return 0
    return count - cap


def load_excess_delta(count: int, cap: Optional[int]) -> int:
    """Change in excess when one more period is taught on a day with ``count`` already."""
    if cap is None:
        return 0
    return 1 if count >= cap else 0


def teacher_load_penalty(day_masks: Sequence[int], cap: Optional[int]) -> int:
    """Total excess over a week of per-day slot masks."""
    return sum(load_excess(mask.bit_count(), cap) for mask in day_masks)
