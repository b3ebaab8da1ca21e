"""
Domain model builder for timetabling.

Turns a validated GenerationRequest into a SchoolModel: every entity gets
a dense integer index and every per-period fact becomes a bitset, so the
search never touches strings or pydantic objects in its inner loop.

Period representation:
- index = day * slots_per_day + slot
- Bit ``index`` of a mask is set when the fact holds for that period

Example:
    5 days x 8 slots, Wednesday slot 3 -> index 2 * 8 + 3 = 19
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .constraints.availability import (
    periods_to_mask,
    qualified_teachers,
    schedulable_mask,
    teaches_subject,
)
from .constraints.no_overlap import Placement, has_bit
from .constraints.rooms import compatible_room_mask, evaluate_room
from .data.loader import parse_request
from .data.models import Distribution, GenerationRequest, PeriodRef, day_name
from .errors import InvalidInputError

logger = logging.getLogger(__name__)


# =============================================================================
# Model Structures
# =============================================================================

@dataclass
class RequirementInfo:
    """A (class, subject) requirement in index form."""
    index: int
    id: str
    class_idx: int
    subject_idx: int
    periods_per_week: int
    spread: bool
    qualified_teachers: list[int]
    room_mask: int  # compatible rooms; 0 when rooms are not tracked
    occurrences: list[int] = field(default_factory=list)


@dataclass
class Occurrence:
    """One weekly instance of a requirement (the unit the solver places)."""
    index: int
    requirement: int
    class_idx: int
    subject_idx: int
    ordinal: int  # 0-based position within its requirement


@dataclass
class SchoolModel:
    """Normalized, read-only problem description shared by all trials."""
    request: GenerationRequest
    num_days: int
    slots_per_day: int

    teacher_ids: list[str]
    class_ids: list[str]
    subject_ids: list[str]
    room_ids: list[str]

    schedulable_mask: int
    teacher_unavailable: list[int]
    teacher_max_per_day: list[Optional[int]]

    requirements: list[RequirementInfo]
    occurrences: list[Occurrence]
    locked: dict[int, Placement]

    class_occurrences: list[list[int]]
    teacher_occurrences: list[list[int]]  # occurrences the teacher is qualified for

    teacher_index: dict[str, int] = field(default_factory=dict)
    class_index: dict[str, int] = field(default_factory=dict)
    subject_index: dict[str, int] = field(default_factory=dict)
    room_index: dict[str, int] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Grid helpers
    # -------------------------------------------------------------------------

    @property
    def num_periods(self) -> int:
        return self.num_days * self.slots_per_day

    @property
    def rooms_tracked(self) -> bool:
        return bool(self.room_ids)

    def period(self, day: int, slot: int) -> int:
        return day * self.slots_per_day + slot

    def day_slot(self, period: int) -> tuple[int, int]:
        return divmod(period, self.slots_per_day)

    def period_label(self, period: int) -> str:
        day, slot = self.day_slot(period)
        return f"{day_name(day)} P{slot + 1}"

    def period_ref(self, period: int) -> PeriodRef:
        day, slot = self.day_slot(period)
        return PeriodRef(day=day, slot=slot)

    def is_schedulable(self, period: int) -> bool:
        return has_bit(self.schedulable_mask, period)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def requirement_of(self, occurrence: int) -> RequirementInfo:
        return self.requirements[self.occurrences[occurrence].requirement]

    def requirement_for(self, class_idx: int, subject_idx: int) -> Optional[RequirementInfo]:
        for req in self.requirements:
            if req.class_idx == class_idx and req.subject_idx == subject_idx:
                return req
        return None

    def is_qualified(self, teacher: int, occurrence: int) -> bool:
        return teacher in self.requirement_of(occurrence).qualified_teachers

    def describe(self, occurrence: int) -> str:
        occ = self.occurrences[occurrence]
        req = self.requirements[occ.requirement]
        return f"{req.id}#{occ.ordinal + 1}"

    @property
    def total_occurrences(self) -> int:
        return len(self.occurrences)


# =============================================================================
# Builder
# =============================================================================

class TimetableModelBuilder:
    """
    Builds a SchoolModel from a GenerationRequest.

    Every check runs and every problem is collected, so one InvalidInputError
    lists all of them instead of the first one found.

    Usage:
        builder = TimetableModelBuilder(request)
        model = builder.build()
    """

    def __init__(self, request: GenerationRequest):
        self.request = request
        self.grid = request.grid
        self.errors: list[str] = []

        self.teacher_index = {t.id: i for i, t in enumerate(request.teachers)}
        self.class_index = {c.id: i for i, c in enumerate(request.classes)}
        self.subject_index = {s.id: i for i, s in enumerate(request.subjects)}
        self.room_index = {r.id: i for i, r in enumerate(request.rooms)}

    def build(self) -> SchoolModel:
        """
        Build the model.

        Raises:
            InvalidInputError: if the request cannot be scheduled as given
        """
        self.errors = []
        schedulable = schedulable_mask(self.grid)
        requirements = self._build_requirements(schedulable)
        occurrences = self._build_occurrences(requirements)
        locked = self._build_locks(requirements, schedulable)

        if self.errors:
            logger.info("Rejected request for school %s: %d problem(s)", self.request.school_id, len(self.errors))
            raise InvalidInputError(self.errors)

        num_teachers = len(self.request.teachers)
        class_occurrences: list[list[int]] = [[] for _ in self.request.classes]
        teacher_occurrences: list[list[int]] = [[] for _ in range(num_teachers)]
        for occ in occurrences:
            class_occurrences[occ.class_idx].append(occ.index)
            for t in requirements[occ.requirement].qualified_teachers:
                teacher_occurrences[t].append(occ.index)

        model = SchoolModel(
            request=self.request,
            num_days=self.grid.num_days,
            slots_per_day=self.grid.slots_per_day,
            teacher_ids=list(self.teacher_index),
            class_ids=list(self.class_index),
            subject_ids=list(self.subject_index),
            room_ids=list(self.room_index),
            schedulable_mask=schedulable,
            teacher_unavailable=[
                periods_to_mask(t.unavailable, self.grid.slots_per_day) for t in self.request.teachers
            ],
            teacher_max_per_day=[t.preferred_max_per_day for t in self.request.teachers],
            requirements=requirements,
            occurrences=occurrences,
            locked=locked,
            class_occurrences=class_occurrences,
            teacher_occurrences=teacher_occurrences,
            teacher_index=dict(self.teacher_index),
            class_index=dict(self.class_index),
            subject_index=dict(self.subject_index),
            room_index=dict(self.room_index),
        )
        logger.debug(
            "Built model: %d requirements, %d occurrences, %d locked, %d schedulable periods",
            len(requirements), len(occurrences), len(locked), schedulable.bit_count(),
        )
        return model

    # -------------------------------------------------------------------------
    # Requirements and occurrences
    # -------------------------------------------------------------------------

    def _build_requirements(self, schedulable: int) -> list[RequirementInfo]:
        request = self.request
        available = schedulable.bit_count()
        requirements = []

        for idx, req in enumerate(request.requirements):
            if req.periods_per_week > available:
                self.errors.append(
                    f"Requirement {req.id}: periods_per_week ({req.periods_per_week}) "
                    f"exceeds the {available} schedulable periods"
                )
            if not teaches_subject(request.teachers, req.subject_id):
                self.errors.append(
                    f"Requirement {req.id}: no teacher in the roster is qualified for subject '{req.subject_id}'"
                )

            subject = request.subjects[self.subject_index[req.subject_id]]
            school_class = request.classes[self.class_index[req.class_id]]
            requirements.append(RequirementInfo(
                index=idx,
                id=req.id,
                class_idx=self.class_index[req.class_id],
                subject_idx=self.subject_index[req.subject_id],
                periods_per_week=req.periods_per_week,
                spread=req.distribution == Distribution.SPREAD,
                qualified_teachers=qualified_teachers(request.teachers, req.subject_id, req.class_id),
                room_mask=compatible_room_mask(request.rooms, subject, school_class),
            ))

        return requirements

    def _build_occurrences(self, requirements: list[RequirementInfo]) -> list[Occurrence]:
        occurrences = []
        for req in requirements:
            for ordinal in range(req.periods_per_week):
                occ = Occurrence(
                    index=len(occurrences),
                    requirement=req.index,
                    class_idx=req.class_idx,
                    subject_idx=req.subject_idx,
                    ordinal=ordinal,
                )
                req.occurrences.append(occ.index)
                occurrences.append(occ)
        return occurrences

    # -------------------------------------------------------------------------
    # Locked assignments
    # -------------------------------------------------------------------------

    def _build_locks(self, requirements: list[RequirementInfo], schedulable: int) -> dict[int, Placement]:
        """Validate locks and bind each to the next free occurrence of its requirement."""
        request = self.request
        locked: dict[int, Placement] = {}
        used = Counter()
        teacher_taken: dict[int, int] = {}
        class_taken: dict[int, int] = {}
        room_taken: dict[tuple[int, int], str] = {}

        for lock in request.locked:
            where = f"Locked {lock.class_id}/{lock.subject_id} at {lock.period}"
            c = self.class_index[lock.class_id]
            s = self.subject_index[lock.subject_id]
            t = self.teacher_index[lock.teacher_id]
            p = lock.day * self.grid.slots_per_day + lock.slot
            r = self.room_index[lock.room_id] if lock.room_id is not None else None
            teacher = request.teachers[t]

            req = next((q for q in requirements if q.class_idx == c and q.subject_idx == s), None)
            if req is None:
                self.errors.append(f"{where}: no requirement for this class and subject")
                continue

            if not has_bit(schedulable, p):
                self.errors.append(f"{where}: period is blocked")
            if t not in req.qualified_teachers:
                self.errors.append(f"{where}: teacher '{teacher.id}' is not qualified")
            if lock.period in teacher.unavailable:
                self.errors.append(f"{where}: teacher '{teacher.id}' is unavailable")

            if r is not None:
                if not has_bit(req.room_mask, r):
                    suitability = evaluate_room(
                        request.rooms[r], r, request.subjects[s], request.classes[c]
                    )
                    self.errors.append(
                        f"{where}: room '{lock.room_id}' is incompatible ({'; '.join(suitability.reasons)})"
                    )
                if (r, p) in room_taken:
                    self.errors.append(f"{where}: room '{lock.room_id}' is double-booked with {room_taken[(r, p)]}")
                room_taken[(r, p)] = where

            if has_bit(teacher_taken.get(t, 0), p):
                self.errors.append(f"{where}: teacher '{teacher.id}' is double-booked by another lock")
            teacher_taken[t] = teacher_taken.get(t, 0) | (1 << p)
            if has_bit(class_taken.get(c, 0), p):
                self.errors.append(f"{where}: class '{lock.class_id}' is double-booked by another lock")
            class_taken[c] = class_taken.get(c, 0) | (1 << p)

            if used[req.index] >= req.periods_per_week:
                self.errors.append(
                    f"{where}: more locks than the {req.periods_per_week} periods per week of {req.id}"
                )
                continue

            occurrence = req.occurrences[used[req.index]]
            used[req.index] += 1
            locked[occurrence] = Placement(t, p, r)

        return locked


# =============================================================================
# Convenience
# =============================================================================

def build_school_model(source: Union[GenerationRequest, Mapping[str, Any]]) -> SchoolModel:
    """
    Build a SchoolModel from a request model or a raw payload.

    Raw payloads may use camelCase or snake_case keys.

    Raises:
        InvalidInputError: malformed payload or unschedulable request
    """
    request = source if isinstance(source, GenerationRequest) else parse_request(source)
    return TimetableModelBuilder(request).build()


def capacity_warnings(model: SchoolModel) -> list[str]:
    """
    Cheap capacity checks that don't reject a request but usually doom it.

    Compares weekly demand of each class and each single-subject pool of
    teachers against the periods that can actually host it.
    """
    warnings = []
    schedulable = model.schedulable_mask.bit_count()

    demand_per_class = Counter()
    for req in model.requirements:
        demand_per_class[req.class_idx] += req.periods_per_week
    for c, demand in demand_per_class.items():
        if demand > schedulable:
            warnings.append(
                f"Class {model.class_ids[c]} needs {demand} periods but only {schedulable} are schedulable"
            )

    for req in model.requirements:
        capacity = sum(
            (model.schedulable_mask & ~model.teacher_unavailable[t]).bit_count()
            for t in req.qualified_teachers
        )
        if capacity < req.periods_per_week:
            warnings.append(
                f"Requirement {req.id} needs {req.periods_per_week} periods but its qualified "
                f"teachers have only {capacity} available"
            )

    demand_per_teacher_pool = Counter()
    pool_capacity: dict[tuple[int, ...], int] = {}
    for req in model.requirements:
        pool = tuple(req.qualified_teachers)
        if len(pool) == 1:
            demand_per_teacher_pool[pool] += req.periods_per_week
            pool_capacity[pool] = (model.schedulable_mask & ~model.teacher_unavailable[pool[0]]).bit_count()
    for pool, demand in demand_per_teacher_pool.items():
        if demand > pool_capacity[pool]:
            warnings.append(
                f"Teacher {model.teacher_ids[pool[0]]} is the only option for {demand} periods "
                f"but is available for {pool_capacity[pool]}"
            )

    return warnings
