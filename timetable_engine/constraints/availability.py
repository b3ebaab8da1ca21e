"""
Availability and qualification checks for timetabling.

This module builds the static masks the rest of the engine relies on:
- Schedulable periods (the grid minus blocked periods)
- Teacher unavailability per period
- Which teachers are qualified for a (subject, class) pair
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from ..data.models import PeriodGrid, PeriodRef, Teacher


def periods_to_mask(refs: Iterable[PeriodRef], slots_per_day: int) -> int:
    """Bitset of period indices for a list of (day, slot) references."""
    mask = 0
    for ref in refs:
        mask |= 1 << (ref.day * slots_per_day + ref.slot)
    return mask


def schedulable_mask(grid: PeriodGrid) -> int:
    """All grid periods except the blocked ones."""
    full = (1 << grid.period_count) - 1
    return full & ~periods_to_mask(grid.blocked, grid.slots_per_day)


def teacher_available_mask(teacher: Teacher, grid: PeriodGrid) -> int:
    """Schedulable periods in which ``teacher`` has no prior commitment."""
    return schedulable_mask(grid) & ~periods_to_mask(teacher.unavailable, grid.slots_per_day)


def qualified_teachers(teachers: Sequence[Teacher], subject_id: str, class_id: str) -> list[int]:
    """
    Indices of teachers qualified to teach ``subject_id`` to ``class_id``.

    A qualification without class ids covers every class.
    """
    return [idx for idx, teacher in enumerate(teachers) if teacher.is_qualified(subject_id, class_id)]


def teaches_subject(teachers: Sequence[Teacher], subject_id: str) -> bool:
    """True if anyone in the roster holds a qualification for ``subject_id``."""
    return any(subject_id in teacher.subject_ids for teacher in teachers)
