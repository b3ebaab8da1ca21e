"""
Gap minimization for timetabling.

A gap is an idle slot between the first and the last lesson of a day.
Days are tracked as slot masks, so the gap count of a day is the span of
the mask minus its population count.

Example:
    slots 0, 1 and 4 taught -> mask 0b10011 -> span 5, taught 3 -> 2 gaps
"""

from __future__ import annotations

from typing import Sequence


def day_gaps(mask: int) -> int:
    """Idle slots between the first and last set bit of a day mask."""
    if mask == 0:
        return 0
    first = (mask & -mask).bit_length() - 1
    last = mask.bit_length() - 1
    return (last - first + 1) - mask.bit_count()


def gap_delta(mask: int, slot: int) -> int:
    """Change in gaps when ``slot`` is added to a day mask."""
    return day_gaps(mask | (1 << slot)) - day_gaps(mask)


def total_gaps(day_masks: Sequence[int]) -> int:
    return sum(day_gaps(mask) for mask in day_masks)
