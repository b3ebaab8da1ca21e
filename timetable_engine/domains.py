"""
Candidate domain generation.

For every occurrence the domain is the list of (teacher, period) pairs
that pass the static hard constraints: the teacher is qualified for the
subject and class, the period is schedulable and the teacher is not
unavailable in it. Rooms are not expanded into the domain; each
requirement carries a compatible-room bitset, and search branches over
classes of interchangeable rooms (rooms that belong to exactly the same
requirement room sets) when it places an occurrence.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from .constraints.no_overlap import has_bit
from .errors import UnsatisfiableRequirementError
from .model_builder import SchoolModel

logger = logging.getLogger(__name__)


NO_QUALIFIED_TEACHER = "NoQualifiedTeacherAvailable"
TEACHERS_SATURATED = "AllCandidateTeachersSaturated"
ROOM_CAPACITY_EXHAUSTED = "RoomCapacityExhausted"


@dataclass
class Domains:
    """Static candidate values per occurrence, shared read-only by all trials."""
    candidates: list[list[tuple[int, int]]]
    by_period: list[dict[int, list[int]]]  # occurrence -> period -> candidate indices
    room_groups: dict[int, list[int]] = field(default_factory=dict)  # room mask -> occurrences
    room_classes: list[int] = field(default_factory=list)  # masks of interchangeable rooms
    unsatisfiable: list[UnsatisfiableRequirementError] = field(default_factory=list)

    def size(self, occurrence: int) -> int:
        return len(self.candidates[occurrence])

    @property
    def schedulable(self) -> list[int]:
        """Occurrences with at least one candidate."""
        return [o for o, values in enumerate(self.candidates) if values]


def room_classes(num_rooms: int, room_groups: dict[int, list[int]]) -> list[int]:
    """
    Partition rooms by the requirement room sets that contain them.

    Two rooms in the same class can be swapped in any timetable. Classes
    are ordered by how many occurrences could use them, fewest first, then
    by lowest room index; rooms no requirement can use are left out.
    """
    classes: dict[tuple[int, ...], int] = defaultdict(int)
    for room in range(num_rooms):
        signature = tuple(mask for mask in room_groups if has_bit(mask, room))
        if signature:
            classes[signature] |= 1 << room

    def contention(item: tuple[tuple[int, ...], int]) -> tuple[int, int]:
        signature, mask = item
        return sum(len(room_groups[m]) for m in signature), mask & -mask

    return [mask for _, mask in sorted(classes.items(), key=contention)]


def generate_domains(model: SchoolModel) -> Domains:
    """
    Compute the candidate domain of every occurrence.

    A requirement whose occurrences end up with empty domains is reported
    once as an UnsatisfiableRequirementError; its occurrences stay in the
    model but search skips them.

    Locked occurrences get exactly their pinned (teacher, period).
    """
    candidates: list[list[tuple[int, int]]] = []
    by_period: list[dict[int, list[int]]] = []
    room_groups: dict[int, list[int]] = defaultdict(list)
    unsatisfiable: list[UnsatisfiableRequirementError] = []

    requirement_values: dict[int, list[tuple[int, int]]] = {}
    for req in model.requirements:
        values = []
        for teacher in req.qualified_teachers:
            available = model.schedulable_mask & ~model.teacher_unavailable[teacher]
            for period in range(model.num_periods):
                if has_bit(available, period):
                    values.append((teacher, period))
        requirement_values[req.index] = values

        if model.rooms_tracked and req.room_mask == 0:
            unsatisfiable.append(UnsatisfiableRequirementError(
                req.id,
                ROOM_CAPACITY_EXHAUSTED,
                "no room matches the subject's room type and the class size",
            ))
        elif not values:
            if req.qualified_teachers:
                detail = "every qualified teacher is unavailable in all schedulable periods"
            else:
                detail = f"no teacher is qualified for this subject in class '{model.class_ids[req.class_idx]}'"
            unsatisfiable.append(UnsatisfiableRequirementError(req.id, NO_QUALIFIED_TEACHER, detail))

    dead = {e.requirement_id for e in unsatisfiable}

    for occ in model.occurrences:
        req = model.requirements[occ.requirement]
        if req.id in dead:
            values = []
        elif occ.index in model.locked:
            pinned = model.locked[occ.index]
            values = [(pinned.teacher, pinned.period)]
        else:
            values = requirement_values[req.index]

        index: dict[int, list[int]] = defaultdict(list)
        for ci, (_, period) in enumerate(values):
            index[period].append(ci)

        candidates.append(values)
        by_period.append(dict(index))
        if model.rooms_tracked and values:
            room_groups[req.room_mask].append(occ.index)

    for error in unsatisfiable:
        logger.warning("%s", error)

    return Domains(
        candidates=candidates,
        by_period=by_period,
        room_groups=dict(room_groups),
        room_classes=room_classes(len(model.room_ids), room_groups),
        unsatisfiable=unsatisfiable,
    )
