"""
Conflict reporting for timetables that could not be completed.

For every requirement with unplaced occurrences the report states why,
which periods were contended and which assignments hold them.

Reasons:
- NoQualifiedTeacherAvailable: no qualified teacher is free in any schedulable period
- AllCandidateTeachersSaturated: every candidate period is taken by the teacher or the class
- RoomCapacityExhausted: teacher and class are free, but every compatible room is occupied
- SearchBudgetExhausted: a free value exists, the search just ran out of budget first
"""

from __future__ import annotations

import logging

from .constraints import ConstraintEngine
from .constraints.no_overlap import Placement
from .constraints.rooms import room_indices
from .domains import (
    NO_QUALIFIED_TEACHER,
    ROOM_CAPACITY_EXHAUSTED,
    TEACHERS_SATURATED,
    Domains,
)
from .model_builder import SchoolModel
from .output.schema import CompetingAssignment, ConflictEntry, ConflictReport

logger = logging.getLogger(__name__)


BUDGET_EXHAUSTED = "SearchBudgetExhausted"

MAX_COMPETING = 25


def build_conflict_report(
    model: SchoolModel,
    domains: Domains,
    placements: dict[int, Placement],
) -> ConflictReport:
    """
    Explain every unplaced occurrence of a (partial) timetable.

    Args:
        model: The school model
        domains: Candidate domains used for the run
        placements: The final assignment (occurrence -> Placement)

    Returns:
        ConflictReport with one entry per incomplete requirement
    """
    engine = ConstraintEngine(model)
    engine.load(placements)
    dead = {e.requirement_id: e.reason for e in domains.unsatisfiable}

    entries = []
    total_unplaced = 0
    for req in model.requirements:
        unplaced = [o for o in req.occurrences if o not in placements]
        if not unplaced:
            continue
        total_unplaced += len(unplaced)

        if req.id in dead:
            entries.append(ConflictEntry(
                requirementId=req.id,
                classId=model.class_ids[req.class_idx],
                subjectId=model.subject_ids[req.subject_idx],
                unplaced=len(unplaced),
                reason=dead[req.id],
            ))
            continue

        values = domains.candidates[unplaced[0]]
        reason, contended, competing = _analyze(model, engine, req.index, unplaced[0], values)
        entries.append(ConflictEntry(
            requirementId=req.id,
            classId=model.class_ids[req.class_idx],
            subjectId=model.subject_ids[req.subject_idx],
            unplaced=len(unplaced),
            reason=reason,
            contendedPeriods=[model.period_ref(p) for p in contended],
            competing=[_competing(model, engine, o) for o in competing[:MAX_COMPETING]],
        ))

    if entries:
        logger.info("Conflict report: %d unplaced occurrence(s) across %d requirement(s)",
                    total_unplaced, len(entries))
    return ConflictReport(entries=entries, totalUnplaced=total_unplaced)


def _analyze(
    model: SchoolModel,
    engine: ConstraintEngine,
    requirement: int,
    occurrence: int,
    values: list[tuple[int, int]],
) -> tuple[str, list[int], list[int]]:
    """Classify why ``occurrence`` has no free value; returns (reason, periods, competing occurrences)."""
    if not values:
        return NO_QUALIFIED_TEACHER, [], []

    req = model.requirements[requirement]
    occupancy = engine.occupancy
    contended: set[int] = set()
    competing: dict[int, None] = {}
    room_blocked = False
    free_value = False

    for teacher, period in values:
        holders = occupancy.blockers(req.class_idx, Placement(teacher, period))
        if holders:
            contended.add(period)
            for o in sorted(holders):
                competing.setdefault(o, None)
            continue
        if model.rooms_tracked and occupancy.free_rooms(req.room_mask, period) == 0:
            room_blocked = True
            contended.add(period)
            for room in room_indices(req.room_mask):
                holder = occupancy.room_owner.get((room, period))
                if holder is not None:
                    competing.setdefault(holder, None)
            continue
        free_value = True

    if free_value:
        reason = BUDGET_EXHAUSTED
    elif room_blocked:
        reason = ROOM_CAPACITY_EXHAUSTED
    else:
        reason = TEACHERS_SATURATED

    ordered = sorted(competing, key=lambda o: (engine.assignment[o].period, o))
    return reason, sorted(contended), ordered


def _competing(model: SchoolModel, engine: ConstraintEngine, occurrence: int) -> CompetingAssignment:
    occ = model.occurrences[occurrence]
    placement = engine.assignment[occurrence]
    day, slot = model.day_slot(placement.period)
    return CompetingAssignment(
        requirementId=model.requirements[occ.requirement].id,
        classId=model.class_ids[occ.class_idx],
        subjectId=model.subject_ids[occ.subject_idx],
        teacherId=model.teacher_ids[placement.teacher],
        roomId=model.room_ids[placement.room] if placement.room is not None else None,
        day=day,
        slot=slot,
    )
