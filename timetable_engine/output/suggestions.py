"""
Improvement suggestions for a generated timetable.

These are hints for the person reviewing a timetable, not constraints:
- a subject taught more than twice in one day of a class
- the same subject in back-to-back slots (no break in between)
- a teacher day above the teacher's preferred load
- a teacher day with long idle stretches
"""

from __future__ import annotations

from collections import defaultdict

from ..constraints.gaps import day_gaps
from ..data.models import GenerationRequest, day_name
from .schema import Suggestion, TimetableGrid, iter_cells

MAX_SAME_SUBJECT_PER_DAY = 2
MAX_TEACHER_IDLE_SLOTS = 2


def generate_suggestions(request: GenerationRequest, grid: TimetableGrid) -> list[Suggestion]:
    """
    Scan a timetable grid for patterns worth a second look.

    Args:
        request: The request the timetable was generated from
        grid: class -> day -> slot -> cell

    Returns:
        Suggestions, grouped by kind
    """
    suggestions: list[Suggestion] = []
    suggestions.extend(_subject_overload(grid))
    suggestions.extend(_consecutive_subjects(request, grid))
    suggestions.extend(_teacher_days(request, grid))
    return suggestions


def _subject_overload(grid: TimetableGrid) -> list[Suggestion]:
    found = []
    for class_id, days in grid.items():
        for day, slots in enumerate(days):
            counts: dict[str, int] = defaultdict(int)
            for cell in slots:
                if cell is not None:
                    counts[cell.subject_id] += 1
            for subject_id, count in sorted(counts.items()):
                if count > MAX_SAME_SUBJECT_PER_DAY:
                    found.append(Suggestion(
                        kind="distribution",
                        message=(
                            f"{subject_id} is taught {count} times on {day_name(day)} in {class_id}. "
                            f"Consider spreading it across the week."
                        ),
                        classId=class_id,
                        subjectId=subject_id,
                        day=day,
                    ))
    return found


def _consecutive_subjects(request: GenerationRequest, grid: TimetableGrid) -> list[Suggestion]:
    breaks_after = {b.after_slot for b in request.grid.breaks}
    found = []
    for class_id, days in grid.items():
        for day, slots in enumerate(days):
            for slot in range(len(slots) - 1):
                current, following = slots[slot], slots[slot + 1]
                if current is None or following is None or slot in breaks_after:
                    continue
                if current.subject_id == following.subject_id:
                    found.append(Suggestion(
                        kind="consecutive",
                        message=(
                            f"{current.subject_id} runs for consecutive periods "
                            f"(P{slot + 1}-P{slot + 2}) on {day_name(day)} in {class_id}. "
                            f"Fine for labs, otherwise consider splitting."
                        ),
                        classId=class_id,
                        subjectId=current.subject_id,
                        day=day,
                    ))
    return found


def _teacher_days(request: GenerationRequest, grid: TimetableGrid) -> list[Suggestion]:
    masks: dict[tuple[str, int], int] = defaultdict(int)
    for _, day, slot, cell in iter_cells(grid):
        masks[(cell.teacher_id, day)] |= 1 << slot

    found = []
    for teacher in request.teachers:
        for day in range(request.grid.num_days):
            mask = masks.get((teacher.id, day), 0)
            if not mask:
                continue
            count = mask.bit_count()
            if teacher.preferred_max_per_day is not None and count > teacher.preferred_max_per_day:
                found.append(Suggestion(
                    kind="teacher_load",
                    message=(
                        f"{teacher.name} teaches {count} periods on {day_name(day)}, "
                        f"above the preferred {teacher.preferred_max_per_day}."
                    ),
                    teacherId=teacher.id,
                    day=day,
                ))
            gaps = day_gaps(mask)
            if gaps >= MAX_TEACHER_IDLE_SLOTS:
                found.append(Suggestion(
                    kind="gaps",
                    message=f"{teacher.name} has {gaps} idle periods between lessons on {day_name(day)}.",
                    teacherId=teacher.id,
                    day=day,
                ))
    return found
