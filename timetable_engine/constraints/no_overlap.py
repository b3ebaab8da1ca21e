"""
No-overlap bookkeeping for timetabling.

This module tracks occupancy so that nothing is double-booked:
- Teachers (cannot teach two lessons in the same period)
- Classes (cannot have two lessons in the same period)
- Rooms (cannot host two lessons in the same period)

Occupancy is kept as Python ints used as bitsets, one bit per period
(or one bit per room for ``rooms_busy_at``), so every test is O(1).
"""

from __future__ import annotations

from typing import NamedTuple, Optional


class Placement(NamedTuple):
    """Where an occurrence is placed: teacher index, period index, room index."""
    teacher: int
    period: int
    room: Optional[int] = None


def has_bit(mask: int, index: int) -> bool:
    return (mask >> index) & 1 == 1


class Occupancy:
    """
    Busy bitsets plus owner maps for teachers, classes and rooms.

    The owner maps answer "which occurrence holds this (entity, period)",
    which repair moves and conflict reports need.
    """

    def __init__(self, num_teachers: int, num_classes: int, num_rooms: int, num_periods: int):
        self.teacher_busy = [0] * num_teachers
        self.class_busy = [0] * num_classes
        self.room_busy = [0] * num_rooms
        self.rooms_busy_at = [0] * num_periods

        self.teacher_owner: dict[tuple[int, int], int] = {}
        self.class_owner: dict[tuple[int, int], int] = {}
        self.room_owner: dict[tuple[int, int], int] = {}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def teacher_free(self, teacher: int, period: int) -> bool:
        return not has_bit(self.teacher_busy[teacher], period)

    def class_free(self, class_idx: int, period: int) -> bool:
        return not has_bit(self.class_busy[class_idx], period)

    def room_free(self, room: int, period: int) -> bool:
        return not has_bit(self.room_busy[room], period)

    def free_rooms(self, room_mask: int, period: int) -> int:
        """Bitset of rooms in ``room_mask`` that are free at ``period``."""
        return room_mask & ~self.rooms_busy_at[period]

    def blockers(self, class_idx: int, placement: Placement) -> set[int]:
        """Occurrences that currently hold the teacher, class or room of ``placement``."""
        teacher, period, room = placement
        found = set()
        for owner in (
            self.teacher_owner.get((teacher, period)),
            self.class_owner.get((class_idx, period)),
            self.room_owner.get((room, period)) if room is not None else None,
        ):
            if owner is not None:
                found.add(owner)
        return found

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def mark(self, occurrence: int, class_idx: int, placement: Placement) -> None:
        teacher, period, room = placement
        bit = 1 << period
        self.teacher_busy[teacher] |= bit
        self.class_busy[class_idx] |= bit
        self.teacher_owner[(teacher, period)] = occurrence
        self.class_owner[(class_idx, period)] = occurrence
        if room is not None:
            self.room_busy[room] |= bit
            self.rooms_busy_at[period] |= 1 << room
            self.room_owner[(room, period)] = occurrence

    def clear(self, class_idx: int, placement: Placement) -> None:
        teacher, period, room = placement
        bit = ~(1 << period)
        self.teacher_busy[teacher] &= bit
        self.class_busy[class_idx] &= bit
        del self.teacher_owner[(teacher, period)]
        del self.class_owner[(class_idx, period)]
        if room is not None:
            self.room_busy[room] &= bit
            self.rooms_busy_at[period] &= ~(1 << room)
            del self.room_owner[(room, period)]
