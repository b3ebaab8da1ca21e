"""
Output schema for generated timetables.

This module defines the JSON-serializable shapes the engine hands back to
the platform: generation results, run status, conflict reports, persisted
timetables and manual edits. Field names are camelCase on the wire.

Grid layout:
    timetable[class_id][day][slot] -> Cell or null
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, Optional

from pydantic import BaseModel, Field, computed_field

from ..data.models import GenerationRequest, PeriodRef
from ..errors import ManualEditRejected

if TYPE_CHECKING:
    from ..constraints.no_overlap import Placement
    from ..model_builder import SchoolModel


# =============================================================================
# Enums
# =============================================================================

class SolveState(str, Enum):
    """Search state machine: READY -> SEARCHING -> SOLVED | PARTIAL | TIMED_OUT."""
    READY = "ready"
    SEARCHING = "searching"
    SOLVED = "solved"
    PARTIAL = "partial"
    TIMED_OUT = "timed_out"

    @property
    def is_final(self) -> bool:
        return self in (SolveState.SOLVED, SolveState.PARTIAL, SolveState.TIMED_OUT)


# =============================================================================
# Grid
# =============================================================================

class Cell(BaseModel):
    """One occupied cell of a class timetable."""
    teacher_id: str = Field(alias="teacherId")
    subject_id: str = Field(alias="subjectId")
    room_id: Optional[str] = Field(default=None, alias="roomId")
    requirement_id: Optional[str] = Field(default=None, alias="requirementId")
    locked: bool = False

    model_config = {"populate_by_name": True}


TimetableGrid = dict[str, list[list[Optional[Cell]]]]


def empty_grid(class_ids: list[str], num_days: int, slots_per_day: int) -> TimetableGrid:
    return {c: [[None] * slots_per_day for _ in range(num_days)] for c in class_ids}


def to_grid(model: SchoolModel, placements: dict[int, Placement]) -> TimetableGrid:
    """
    Convert solver placements into the dense class -> day -> slot grid.

    Args:
        model: The school model the placements refer to
        placements: occurrence index -> Placement

    Returns:
        Grid with a Cell for every placed occurrence
    """
    grid = empty_grid(model.class_ids, model.num_days, model.slots_per_day)
    for occurrence, placement in sorted(placements.items()):
        occ = model.occurrences[occurrence]
        req = model.requirements[occ.requirement]
        day, slot = model.day_slot(placement.period)
        grid[model.class_ids[occ.class_idx]][day][slot] = Cell(
            teacherId=model.teacher_ids[placement.teacher],
            subjectId=model.subject_ids[occ.subject_idx],
            roomId=model.room_ids[placement.room] if placement.room is not None else None,
            requirementId=req.id,
            locked=occurrence in model.locked,
        )
    return grid


def iter_cells(grid: TimetableGrid) -> Iterator[tuple[str, int, int, Cell]]:
    """Yield (class_id, day, slot, cell) for every occupied cell."""
    for class_id, days in grid.items():
        for day, slots in enumerate(days):
            for slot, cell in enumerate(slots):
                if cell is not None:
                    yield class_id, day, slot, cell


# =============================================================================
# Scores and Coverage
# =============================================================================

class ScoreBreakdown(BaseModel):
    """Soft-constraint score: raw counts plus the weighted total."""
    total: int = 0
    teacher_load: int = Field(default=0, alias="teacherLoad")
    teacher_gaps: int = Field(default=0, alias="teacherGaps")
    class_gaps: int = Field(default=0, alias="classGaps")
    subject_spread: int = Field(default=0, alias="subjectSpread")
    weights: dict[str, int] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ClassCoverage(BaseModel):
    """How much of one class's weekly demand was placed."""
    class_id: str = Field(alias="classId")
    placed: int
    required: int

    model_config = {"populate_by_name": True}

    @computed_field
    @property
    def complete(self) -> bool:
        return self.placed == self.required


class RunStatistics(BaseModel):
    """Search effort of a generation run."""
    trials: int = 1
    best_trial: int = Field(default=0, alias="bestTrial")
    nodes: int = 0
    node_budget: int = Field(default=0, alias="nodeBudget")
    repair_iterations: int = Field(default=0, alias="repairIterations")
    search_seconds: float = Field(default=0.0, alias="searchSeconds")
    repair_seconds: float = Field(default=0.0, alias="repairSeconds")
    elapsed_seconds: float = Field(default=0.0, alias="elapsedSeconds")
    hit_time_limit: bool = Field(default=False, alias="hitTimeLimit")

    model_config = {"populate_by_name": True}


# =============================================================================
# Diagnostics and Conflicts
# =============================================================================

class Diagnostic(BaseModel):
    """A non-fatal problem recorded on a result (named after the error kind)."""
    kind: str
    message: str
    requirement_id: Optional[str] = Field(default=None, alias="requirementId")
    reason: Optional[str] = None

    model_config = {"populate_by_name": True}

    @classmethod
    def from_error(cls, error: Exception) -> Diagnostic:
        return cls(
            kind=type(error).__name__,
            message=str(error),
            requirementId=getattr(error, "requirement_id", None),
            reason=getattr(error, "reason", None),
        )


class CompetingAssignment(BaseModel):
    """An assignment occupying a period an unplaced occurrence wanted."""
    requirement_id: str = Field(alias="requirementId")
    class_id: str = Field(alias="classId")
    subject_id: str = Field(alias="subjectId")
    teacher_id: str = Field(alias="teacherId")
    room_id: Optional[str] = Field(default=None, alias="roomId")
    day: int
    slot: int

    model_config = {"populate_by_name": True}


class ConflictEntry(BaseModel):
    """Why one requirement could not be fully placed."""
    requirement_id: str = Field(alias="requirementId")
    class_id: str = Field(alias="classId")
    subject_id: str = Field(alias="subjectId")
    unplaced: int
    reason: str
    contended_periods: list[PeriodRef] = Field(default_factory=list, alias="contendedPeriods")
    competing: list[CompetingAssignment] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class ConflictReport(BaseModel):
    """Unplaced occurrences grouped by requirement."""
    entries: list[ConflictEntry] = Field(default_factory=list)
    total_unplaced: int = Field(default=0, alias="totalUnplaced")

    model_config = {"populate_by_name": True}

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def for_requirement(self, requirement_id: str) -> Optional[ConflictEntry]:
        return next((e for e in self.entries if e.requirement_id == requirement_id), None)


class Suggestion(BaseModel):
    """An improvement hint for a generated timetable."""
    kind: str
    message: str
    class_id: Optional[str] = Field(default=None, alias="classId")
    teacher_id: Optional[str] = Field(default=None, alias="teacherId")
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    day: Optional[int] = None

    model_config = {"populate_by_name": True}


# =============================================================================
# Generation Result and Status
# =============================================================================

class GenerationResult(BaseModel):
    """Complete outcome of one generation run."""
    run_id: str = Field(alias="runId")
    school_id: str = Field(alias="schoolId")
    term: str = ""
    status: SolveState
    seed: int
    cancelled: bool = False

    placed: int = 0
    total_occurrences: int = Field(default=0, alias="totalOccurrences")
    timetable: TimetableGrid = Field(default_factory=dict)
    score: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    coverage: list[ClassCoverage] = Field(default_factory=list)
    statistics: RunStatistics = Field(default_factory=RunStatistics)

    diagnostics: list[Diagnostic] = Field(default_factory=list)
    conflicts: Optional[ConflictReport] = None
    suggestions: list[Suggestion] = Field(default_factory=list)

    request: Optional[GenerationRequest] = None

    model_config = {"populate_by_name": True}

    @property
    def is_solved(self) -> bool:
        return self.status == SolveState.SOLVED

    def coverage_for(self, class_id: str) -> Optional[ClassCoverage]:
        return next((c for c in self.coverage if c.class_id == class_id), None)

    def diagnostics_of(self, kind: str) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON with camelCase keys."""
        return self.model_dump_json(by_alias=True, indent=indent, exclude_none=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class GenerationStatus(BaseModel):
    """Pollable status of a running or finished generation."""
    school_id: str = Field(alias="schoolId")
    run_id: Optional[str] = Field(default=None, alias="runId")
    state: SolveState = SolveState.READY
    running: bool = False
    placed: int = 0
    total: int = 0
    nodes: int = 0
    elapsed_seconds: float = Field(default=0.0, alias="elapsedSeconds")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}

    @property
    def percent_placed(self) -> float:
        return 100.0 * self.placed / self.total if self.total else 0.0


# =============================================================================
# Persistence and Manual Edits
# =============================================================================

class EditedCell(BaseModel):
    """Audit record of one manual edit."""
    class_id: str = Field(alias="classId")
    day: int
    slot: int
    previous_teacher_id: Optional[str] = Field(default=None, alias="previousTeacherId")
    teacher_id: str = Field(alias="teacherId")
    room_id: Optional[str] = Field(default=None, alias="roomId")
    edited_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="editedAt")

    model_config = {"populate_by_name": True}


class PersistedTimetable(BaseModel):
    """A committed timetable with its provenance."""
    id: str
    school_id: str = Field(alias="schoolId")
    term: str = ""
    run_id: str = Field(alias="runId")
    seed: int
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="generatedAt")
    score: Optional[ScoreBreakdown] = None
    timetable: TimetableGrid
    edited_cells: list[EditedCell] = Field(default_factory=list, alias="editedCells")
    request: GenerationRequest

    model_config = {"populate_by_name": True}

    def cell(self, class_id: str, day: int, slot: int) -> Optional[Cell]:
        return self.timetable[class_id][day][slot]

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent, exclude_none=True)


class ManualEdit(BaseModel):
    """Reassign the teacher (and optionally the room) of one occupied cell."""
    timetable_id: str = Field(alias="timetableId")
    class_id: str = Field(alias="classId")
    day: int = Field(ge=0)
    slot: int = Field(ge=0)
    teacher_id: str = Field(alias="teacherId")
    room_id: Optional[str] = Field(default=None, alias="roomId")

    model_config = {"populate_by_name": True}


class EditResult(BaseModel):
    """Outcome of re-validating a manual edit."""
    accepted: bool
    violated_constraint: Optional[str] = Field(default=None, alias="violatedConstraint")
    detail: Optional[str] = None

    model_config = {"populate_by_name": True}

    def raise_for_rejection(self) -> None:
        """
        Raises:
            ManualEditRejected: if the edit was not accepted
        """
        if not self.accepted:
            raise ManualEditRejected(self.violated_constraint or "unknown", self.detail or "")
