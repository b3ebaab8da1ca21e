"""
Timetable persistence and manual-edit re-validation.

A committed timetable is a dense class -> day -> slot grid plus its
provenance and the request it was generated from. Commits verify every
hard invariant first; manual edits rebuild occupancy from the committed
grid and check only the edited cell, without running the solver.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Optional, Union

from ..constraints import (
    PERIOD_NOT_SCHEDULABLE,
    REQUIREMENT_INCOMPLETE,
    ROOM_INCOMPATIBLE,
    TEACHER_NOT_QUALIFIED,
    ConstraintEngine,
    Violation,
)
from ..data.models import day_name
from ..errors import TimetableEngineError, TimetableInvariantError
from ..model_builder import SchoolModel, build_school_model
from .schema import (
    EditedCell,
    EditResult,
    GenerationResult,
    ManualEdit,
    PersistedTimetable,
    SolveState,
    TimetableGrid,
    iter_cells,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Grid -> occupancy
# =============================================================================

def _where(class_id: str, day: int, slot: int) -> str:
    return f"{class_id} {day_name(day)} P{slot + 1}"


def occupancy_from_grid(
    model: SchoolModel,
    grid: TimetableGrid,
) -> tuple[ConstraintEngine, dict[tuple[str, int, int], int], list[Violation]]:
    """
    Rebuild solver state from a persisted grid.

    Cells are bound to occurrences of their (class, subject) requirement in
    grid order. Cells that break a hard constraint are reported and left out.

    Returns:
        (engine, cell -> occurrence index, violations)
    """
    engine = ConstraintEngine(model)
    cells: dict[tuple[str, int, int], int] = {}
    violations: list[Violation] = []
    used = Counter()

    for class_id, day, slot, cell in iter_cells(grid):
        where = _where(class_id, day, slot)
        c = model.class_index.get(class_id)
        s = model.subject_index.get(cell.subject_id)
        req = model.requirement_for(c, s) if c is not None and s is not None else None
        if req is None:
            violations.append(Violation(REQUIREMENT_INCOMPLETE, f"{where}: no requirement for '{cell.subject_id}'"))
            continue
        if day >= model.num_days or slot >= model.slots_per_day:
            violations.append(Violation(PERIOD_NOT_SCHEDULABLE, f"{where}: outside the period grid"))
            continue
        teacher = model.teacher_index.get(cell.teacher_id)
        if teacher is None:
            violations.append(Violation(TEACHER_NOT_QUALIFIED, f"{where}: unknown teacher '{cell.teacher_id}'"))
            continue
        room = None
        if cell.room_id is not None:
            room = model.room_index.get(cell.room_id)
            if room is None:
                violations.append(Violation(ROOM_INCOMPATIBLE, f"{where}: unknown room '{cell.room_id}'"))
                continue
        if used[req.index] >= req.periods_per_week:
            violations.append(Violation(
                REQUIREMENT_INCOMPLETE, f"{where}: more cells than the {req.periods_per_week} periods of {req.id}"
            ))
            continue

        occurrence = req.occurrences[used[req.index]]
        period = model.period(day, slot)
        problems = engine.check(occurrence, teacher, period, room)
        if problems:
            violations.extend(Violation(name, where, [occurrence]) for name in problems)
            continue
        used[req.index] += 1
        engine.apply(occurrence, teacher, period, room)
        cells[(class_id, day, slot)] = occurrence

    for req in model.requirements:
        if engine.requirement_placed[req.index] != req.periods_per_week:
            violations.append(Violation(
                REQUIREMENT_INCOMPLETE,
                f"{req.id}: {engine.requirement_placed[req.index]} of {req.periods_per_week} periods placed",
            ))

    return engine, cells, violations


def verify_timetable(timetable: PersistedTimetable) -> list[Violation]:
    """All hard-constraint violations of a persisted timetable."""
    model = build_school_model(timetable.request)
    _, _, violations = occupancy_from_grid(model, timetable.timetable)
    return violations


# =============================================================================
# Stores
# =============================================================================

class TimetableStore(ABC):
    """
    Storage for committed timetables.

    ``commit`` is the only way in and refuses timetables whose hard
    invariants do not verify.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()

    def commit(self, timetable: PersistedTimetable) -> PersistedTimetable:
        """
        Verify and store a timetable.

        Raises:
            TimetableInvariantError: if any hard constraint is violated
        """
        violations = verify_timetable(timetable)
        if violations:
            raise TimetableInvariantError([f"{v.constraint}: {v.detail}" for v in violations])
        with self.lock:
            self._save(timetable)
        logger.info("Committed timetable %s for school %s", timetable.id, timetable.school_id)
        return timetable

    def get(self, timetable_id: str) -> PersistedTimetable:
        """
        Raises:
            KeyError: if no timetable has this id
        """
        with self.lock:
            return self._load(timetable_id)

    def list_ids(self, school_id: Optional[str] = None) -> list[str]:
        with self.lock:
            ids = self._ids()
            if school_id is None:
                return ids
            return [i for i in ids if self._load(i).school_id == school_id]

    @abstractmethod
    def _save(self, timetable: PersistedTimetable) -> None:
        ...

    @abstractmethod
    def _load(self, timetable_id: str) -> PersistedTimetable:
        ...

    @abstractmethod
    def _ids(self) -> list[str]:
        ...


class InMemoryTimetableStore(TimetableStore):
    """Store for tests and single-process use."""

    def __init__(self) -> None:
        super().__init__()
        self._items: dict[str, str] = {}

    def _save(self, timetable: PersistedTimetable) -> None:
        # Stored serialized so callers never share mutable state with the store
        self._items[timetable.id] = timetable.to_json()

    def _load(self, timetable_id: str) -> PersistedTimetable:
        if timetable_id not in self._items:
            raise KeyError(f"Timetable not found: {timetable_id}")
        return PersistedTimetable.model_validate_json(self._items[timetable_id])

    def _ids(self) -> list[str]:
        return sorted(self._items)


class JsonTimetableStore(TimetableStore):
    """One JSON file per timetable in a directory; writes are atomic renames."""

    def __init__(self, directory: Union[str, Path]):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, timetable_id: str) -> Path:
        return self.directory / f"{timetable_id}.json"

    def _save(self, timetable: PersistedTimetable) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(timetable.to_json())
            os.replace(tmp, self._path(timetable.id))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _load(self, timetable_id: str) -> PersistedTimetable:
        path = self._path(timetable_id)
        if not path.exists():
            raise KeyError(f"Timetable not found: {timetable_id}")
        return PersistedTimetable.model_validate_json(path.read_text(encoding="utf-8"))

    def _ids(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json") if not p.name.startswith(".tmp-"))


# =============================================================================
# Results -> persisted timetables
# =============================================================================

def persisted_from_result(result: GenerationResult) -> PersistedTimetable:
    """
    Wrap a SOLVED generation result for commit.

    Raises:
        TimetableEngineError: if the result is not SOLVED or has no source request
    """
    if result.status != SolveState.SOLVED:
        raise TimetableEngineError(f"Only solved timetables can be persisted (status: {result.status.value})")
    if result.request is None:
        raise TimetableEngineError("Result carries no source request; it cannot be re-validated later")
    return PersistedTimetable(
        id=result.run_id,
        schoolId=result.school_id,
        term=result.term,
        runId=result.run_id,
        seed=result.seed,
        score=result.score,
        timetable=result.timetable,
        request=result.request,
    )


def commit_result(store: TimetableStore, result: GenerationResult) -> PersistedTimetable:
    return store.commit(persisted_from_result(result))


# =============================================================================
# Manual edits
# =============================================================================

def revalidate_edit(timetable: PersistedTimetable, edit: ManualEdit) -> EditResult:
    """
    Check a manual edit against the committed timetable.

    The cell's current lesson is taken out, then the new teacher (and room,
    if given; otherwise the cell's current room) is checked against
    double-booking, qualification and availability. Re-validating an edit
    that is already applied gives the same answer.
    """
    if edit.timetable_id != timetable.id:
        raise ValueError(f"Edit targets timetable {edit.timetable_id}, not {timetable.id}")

    grid = timetable.timetable
    if edit.class_id not in grid:
        return EditResult(accepted=False, violatedConstraint=REQUIREMENT_INCOMPLETE,
                          detail=f"unknown class '{edit.class_id}'")
    days = grid[edit.class_id]
    if edit.day >= len(days) or edit.slot >= len(days[edit.day]):
        return EditResult(accepted=False, violatedConstraint=PERIOD_NOT_SCHEDULABLE,
                          detail="cell is outside the period grid")
    cell = days[edit.day][edit.slot]
    where = _where(edit.class_id, edit.day, edit.slot)
    if cell is None:
        return EditResult(accepted=False, violatedConstraint=REQUIREMENT_INCOMPLETE,
                          detail=f"{where}: no lesson in this cell to reassign")

    model = build_school_model(timetable.request)
    engine, cells, violations = occupancy_from_grid(model, grid)
    occurrence = cells.get((edit.class_id, edit.day, edit.slot))
    if occurrence is None:
        constraint = violations[0].constraint if violations else REQUIREMENT_INCOMPLETE
        return EditResult(accepted=False, violatedConstraint=constraint,
                          detail=f"{where}: the committed cell itself does not verify")

    teacher = model.teacher_index.get(edit.teacher_id)
    if teacher is None:
        return EditResult(accepted=False, violatedConstraint=TEACHER_NOT_QUALIFIED,
                          detail=f"unknown teacher '{edit.teacher_id}'")

    current = engine.retract(occurrence)
    room = current.room
    if edit.room_id is not None:
        room = model.room_index.get(edit.room_id)
        if room is None:
            return EditResult(accepted=False, violatedConstraint=ROOM_INCOMPATIBLE,
                              detail=f"unknown room '{edit.room_id}'")

    problems = engine.check(occurrence, teacher, current.period, room)
    if problems:
        return EditResult(accepted=False, violatedConstraint=problems[0],
                          detail=f"{where}: {', '.join(problems)}")
    return EditResult(accepted=True)


def apply_edit(store: TimetableStore, edit: ManualEdit) -> EditResult:
    """
    Re-validate an edit and, if accepted, commit the changed timetable.

    The read-check-write sequence holds the store lock, so concurrent edits
    to the same store are serialized.
    """
    with store.lock:
        timetable = store.get(edit.timetable_id)
        result = revalidate_edit(timetable, edit)
        if not result.accepted:
            logger.info("Rejected edit of %s %s: %s", timetable.id,
                        _where(edit.class_id, edit.day, edit.slot), result.violated_constraint)
            return result

        old = timetable.cell(edit.class_id, edit.day, edit.slot)
        room_id = edit.room_id if edit.room_id is not None else old.room_id
        new_cell = old.model_copy(update={"teacher_id": edit.teacher_id, "room_id": room_id})

        grid = {class_id: [list(slots) for slots in days] for class_id, days in timetable.timetable.items()}
        grid[edit.class_id][edit.day][edit.slot] = new_cell
        updated = timetable.model_copy(update={
            "timetable": grid,
            "edited_cells": [
                *timetable.edited_cells,
                EditedCell(
                    classId=edit.class_id,
                    day=edit.day,
                    slot=edit.slot,
                    previousTeacherId=old.teacher_id,
                    teacherId=edit.teacher_id,
                    roomId=room_id,
                ),
            ],
        })
        store.commit(updated)
        return result
