"""
Pydantic models for timetable generation requests.

Grid conventions:
- A period is a (day, slot) pair on a fixed weekly grid
- Days are 0-based (0=Monday), slots are 0-based within the day
- Slot times are 'HH:MM' strings and only matter for display/export

Example:
    Day 2, slot 0 = Wednesday, first period of the day
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# Constants and Enums
# =============================================================================

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class RoomType(str, Enum):
    """Type of room/facility."""
    CLASSROOM = "classroom"
    SCIENCE_LAB = "science_lab"
    COMPUTER_LAB = "computer_lab"
    GYM = "gym"
    SPORTS_HALL = "sports_hall"
    ART_ROOM = "art_room"
    MUSIC_ROOM = "music_room"
    WORKSHOP = "workshop"
    LIBRARY = "library"
    AUDITORIUM = "auditorium"
    OTHER = "other"


class Distribution(str, Enum):
    """Preferred distribution of a requirement's occurrences over the week."""
    SPREAD = "spread"  # no two occurrences on the same day (soft)
    ANY = "any"


# Type aliases for documentation
DayIndex = Annotated[int, Field(ge=0, le=6, description="Day of week (0=Monday)")]
SlotIndex = Annotated[int, Field(ge=0, le=15, description="Slot within the day (0-based)")]

_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# =============================================================================
# Helper Functions
# =============================================================================

def day_name(day: int) -> str:
    """Get day name from index."""
    return DAY_NAMES[day] if 0 <= day < len(DAY_NAMES) else f"Day {day}"


def time_to_minutes(time_str: str) -> int:
    """Convert HH:MM format to minutes from midnight."""
    h, m = map(int, time_str.split(":"))
    return h * 60 + m


# =============================================================================
# Period Grid
# =============================================================================

class PeriodRef(BaseModel):
    """A single period on the weekly grid."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    day: DayIndex
    slot: SlotIndex

    def __str__(self) -> str:
        return f"{day_name(self.day)} P{self.slot + 1}"


class SlotTime(BaseModel):
    """Clock times of one slot, shared by every day."""
    model_config = ConfigDict(extra="forbid")

    start: str = Field(pattern=_TIME_PATTERN, description="Start time (HH:MM)")
    end: str = Field(pattern=_TIME_PATTERN, description="End time (HH:MM)")

    @model_validator(mode="after")
    def validate_time_range(self) -> "SlotTime":
        """Ensure start time is before end time."""
        if time_to_minutes(self.start) >= time_to_minutes(self.end):
            raise ValueError(f"start ({self.start}) must be before end ({self.end})")
        return self


class BreakTime(BaseModel):
    """A named break between slots (display only)."""
    model_config = ConfigDict(extra="forbid")

    name: str
    after_slot: SlotIndex = Field(description="The break follows this slot")
    start: str = Field(pattern=_TIME_PATTERN)
    end: str = Field(pattern=_TIME_PATTERN)


class PeriodGrid(BaseModel):
    """The fixed weekly period grid for a term."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    num_days: int = Field(default=5, ge=1, le=7, description="School days per week")
    slots_per_day: int = Field(default=8, ge=1, le=16, description="Teaching slots per day")
    slot_times: list[SlotTime] = Field(default_factory=list, description="Clock times per slot")
    breaks: list[BreakTime] = Field(default_factory=list, description="Breaks between slots")
    blocked: list[PeriodRef] = Field(default_factory=list, description="Periods nothing may be scheduled in")

    @model_validator(mode="after")
    def validate_grid(self) -> "PeriodGrid":
        """Slot times and blocked periods must fit inside the grid."""
        if self.slot_times and len(self.slot_times) != self.slots_per_day:
            raise ValueError(
                f"slot_times has {len(self.slot_times)} entries but slots_per_day is {self.slots_per_day}"
            )
        for ref in self.blocked:
            if ref.day >= self.num_days or ref.slot >= self.slots_per_day:
                raise ValueError(f"Blocked period {ref} is outside the grid")
        return self

    @property
    def period_count(self) -> int:
        return self.num_days * self.slots_per_day

    @property
    def schedulable_count(self) -> int:
        return self.period_count - len(set(self.blocked))

    def contains(self, day: int, slot: int) -> bool:
        return 0 <= day < self.num_days and 0 <= slot < self.slots_per_day

    def slot_label(self, slot: int) -> str:
        """Display label for a slot, e.g. 'P1 08:00-08:45'."""
        if slot < len(self.slot_times):
            times = self.slot_times[slot]
            return f"P{slot + 1} {times.start}-{times.end}"
        return f"P{slot + 1}"

    @classmethod
    def default(cls) -> "PeriodGrid":
        """Standard school week: 5 days x 8 periods, morning break and lunch."""
        times = [
            ("08:00", "08:45"),
            ("08:50", "09:35"),
            ("09:40", "10:25"),
            ("10:40", "11:25"),
            ("11:30", "12:15"),
            ("12:20", "13:05"),
            ("14:00", "14:45"),
            ("14:50", "15:35"),
        ]
        return cls(
            num_days=5,
            slots_per_day=len(times),
            slot_times=[SlotTime(start=s, end=e) for s, e in times],
            breaks=[
                BreakTime(name="Morning Break", after_slot=2, start="10:25", end="10:40"),
                BreakTime(name="Lunch Break", after_slot=5, start="13:05", end="14:00"),
            ],
        )


# =============================================================================
# Core Entity Models
# =============================================================================

class Qualification(BaseModel):
    """A subject a teacher may teach, optionally restricted to some classes."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    subject_id: str = Field(min_length=1)
    class_ids: tuple[str, ...] = Field(default=(), description="Empty means any class")

    def covers(self, subject_id: str, class_id: str) -> bool:
        return self.subject_id == subject_id and (not self.class_ids or class_id in self.class_ids)


class Teacher(BaseModel):
    """Teacher entity."""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(min_length=1, description="Full name")
    subjects: list[Qualification] = Field(default_factory=list, description="Qualifications, in preference order")
    unavailable: list[PeriodRef] = Field(default_factory=list, description="Periods with prior commitments")
    preferred_max_per_day: Optional[int] = Field(default=None, ge=1, le=16, description="Soft daily load cap")

    @field_validator("subjects", mode="before")
    @classmethod
    def _coerce_subject_ids(cls, v: Any) -> Any:
        # Bare subject ids are unrestricted qualifications
        if isinstance(v, list):
            return [{"subject_id": item} if isinstance(item, str) else item for item in v]
        return v

    @property
    def subject_ids(self) -> list[str]:
        return [q.subject_id for q in self.subjects]

    def is_qualified(self, subject_id: str, class_id: str) -> bool:
        return any(q.covers(subject_id, class_id) for q in self.subjects)

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class SchoolClass(BaseModel):
    """Student class/group. Named to avoid Python's 'class' keyword."""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(min_length=1, description="Class name (e.g., 'Year 7A')")
    student_count: Optional[int] = Field(default=None, ge=1, description="Number of students")

    def __str__(self) -> str:
        return self.name


class Subject(BaseModel):
    """Subject/course."""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(min_length=1, description="Subject name")
    required_room_type: Optional[RoomType] = Field(default=None, description="Required room type")

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class Room(BaseModel):
    """Room/facility."""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(min_length=1, description="Room name/number")
    type: RoomType = Field(default=RoomType.CLASSROOM, description="Type of room")
    capacity: Optional[int] = Field(default=None, ge=1, description="Max capacity")

    def __str__(self) -> str:
        return f"{self.name} ({self.type.value})"


class ClassSubjectRequirement(BaseModel):
    """Weekly demand for one subject in one class."""
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = Field(default=None, description="Defaults to '<class_id>/<subject_id>'")
    class_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    periods_per_week: int = Field(ge=1, le=112, description="Occurrences per week")
    distribution: Distribution = Field(default=Distribution.SPREAD)

    @model_validator(mode="after")
    def _default_id(self) -> "ClassSubjectRequirement":
        if not self.id:
            self.id = f"{self.class_id}/{self.subject_id}"
        return self

    def __str__(self) -> str:
        return f"{self.subject_id} for {self.class_id} x{self.periods_per_week}"


class LockedAssignment(BaseModel):
    """A pre-pinned cell the solver must keep exactly."""
    model_config = ConfigDict(extra="forbid")

    class_id: str
    subject_id: str
    teacher_id: str
    day: DayIndex
    slot: SlotIndex
    room_id: Optional[str] = None

    @property
    def period(self) -> PeriodRef:
        return PeriodRef(day=self.day, slot=self.slot)


class Budget(BaseModel):
    """Per-request overrides of the engine's search budgets."""
    model_config = ConfigDict(extra="forbid")

    node_budget: Optional[int] = Field(default=None, ge=1)
    time_limit_seconds: Optional[float] = Field(default=None, gt=0)
    repair_time_limit_seconds: Optional[float] = Field(default=None, ge=0)
    repair_iterations: Optional[int] = Field(default=None, ge=0)
    parallel_trials: Optional[int] = Field(default=None, ge=1, le=32)


# =============================================================================
# Main Request Model
# =============================================================================

class GenerationRequest(BaseModel):
    """
    Complete input for one timetable generation run.
    This is the only shape the engine accepts from the surrounding platform.
    """
    model_config = ConfigDict(extra="forbid")

    school_id: str = Field(min_length=1)
    term: str = Field(default="", description="Academic term / grid reference")
    grid: PeriodGrid = Field(default_factory=PeriodGrid.default)

    classes: list[SchoolClass] = Field(min_length=1)
    subjects: list[Subject] = Field(min_length=1)
    teachers: list[Teacher] = Field(min_length=1)
    rooms: list[Room] = Field(default_factory=list, description="Empty means rooms are not tracked")
    requirements: list[ClassSubjectRequirement] = Field(min_length=1)
    locked: list[LockedAssignment] = Field(default_factory=list)

    seed: Optional[int] = Field(default=None, description="Random seed for reproducible runs")
    budget: Budget = Field(default_factory=Budget)

    @model_validator(mode="after")
    def validate_no_duplicate_ids(self) -> "GenerationRequest":
        """Ensure no duplicate IDs within each entity type."""
        errors: list[str] = []

        def check_duplicates(items: list, entity_name: str) -> None:
            seen: set[str] = set()
            for item in items:
                if item.id in seen:
                    errors.append(f"Duplicate {entity_name} ID: '{item.id}'")
                seen.add(item.id)

        check_duplicates(self.classes, "class")
        check_duplicates(self.subjects, "subject")
        check_duplicates(self.teachers, "teacher")
        check_duplicates(self.rooms, "room")
        check_duplicates(self.requirements, "requirement")

        pairs: set[tuple[str, str]] = set()
        for req in self.requirements:
            key = (req.class_id, req.subject_id)
            if key in pairs:
                errors.append(f"Duplicate requirement for class '{req.class_id}' and subject '{req.subject_id}'")
            pairs.add(key)

        if errors:
            raise ValueError("Duplicate ID validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

        return self

    @model_validator(mode="after")
    def validate_references(self) -> "GenerationRequest":
        """Validate all cross-entity references."""
        errors: list[str] = []

        class_ids = {c.id for c in self.classes}
        subject_ids = {s.id for s in self.subjects}
        teacher_ids = {t.id for t in self.teachers}
        room_ids = {r.id for r in self.rooms}

        for req in self.requirements:
            if req.class_id not in class_ids:
                errors.append(f"Requirement {req.id}: unknown class_id '{req.class_id}'")
            if req.subject_id not in subject_ids:
                errors.append(f"Requirement {req.id}: unknown subject_id '{req.subject_id}'")

        for teacher in self.teachers:
            for qual in teacher.subjects:
                if qual.subject_id not in subject_ids:
                    errors.append(f"Teacher {teacher.id}: unknown subject '{qual.subject_id}'")
                for class_id in qual.class_ids:
                    if class_id not in class_ids:
                        errors.append(f"Teacher {teacher.id}: unknown class '{class_id}' in qualification")
            for ref in teacher.unavailable:
                if not self.grid.contains(ref.day, ref.slot):
                    errors.append(f"Teacher {teacher.id}: unavailable period {ref} is outside the grid")

        for lock in self.locked:
            where = f"Locked {lock.class_id}/{lock.subject_id} at {lock.period}"
            if lock.class_id not in class_ids:
                errors.append(f"{where}: unknown class_id '{lock.class_id}'")
            if lock.subject_id not in subject_ids:
                errors.append(f"{where}: unknown subject_id '{lock.subject_id}'")
            if lock.teacher_id not in teacher_ids:
                errors.append(f"{where}: unknown teacher_id '{lock.teacher_id}'")
            if lock.room_id is not None and lock.room_id not in room_ids:
                errors.append(f"{where}: unknown room_id '{lock.room_id}'")
            if not self.grid.contains(lock.day, lock.slot):
                errors.append(f"{where}: period is outside the grid")

        if errors:
            raise ValueError("Reference validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

        return self

    # -------------------------------------------------------------------------
    # Lookup Methods
    # -------------------------------------------------------------------------

    def get_teacher(self, teacher_id: str) -> Optional[Teacher]:
        """Get teacher by ID."""
        return next((t for t in self.teachers if t.id == teacher_id), None)

    def get_class(self, class_id: str) -> Optional[SchoolClass]:
        """Get class by ID."""
        return next((c for c in self.classes if c.id == class_id), None)

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        """Get subject by ID."""
        return next((s for s in self.subjects if s.id == subject_id), None)

    def get_room(self, room_id: str) -> Optional[Room]:
        """Get room by ID."""
        return next((r for r in self.rooms if r.id == room_id), None)

    def get_requirement(self, class_id: str, subject_id: str) -> Optional[ClassSubjectRequirement]:
        """Get the requirement for a (class, subject) pair."""
        return next(
            (r for r in self.requirements if r.class_id == class_id and r.subject_id == subject_id),
            None,
        )

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    @property
    def total_occurrences(self) -> int:
        """Total number of requirement occurrences per week."""
        return sum(r.periods_per_week for r in self.requirements)

    def summary(self) -> dict[str, Any]:
        """Get a summary of the request."""
        return {
            "school_id": self.school_id,
            "term": self.term,
            "teachers": len(self.teachers),
            "classes": len(self.classes),
            "subjects": len(self.subjects),
            "rooms": len(self.rooms),
            "requirements": len(self.requirements),
            "locked": len(self.locked),
            "periods": self.grid.period_count,
            "schedulable_periods": self.grid.schedulable_count,
            "total_occurrences": self.total_occurrences,
        }


# =============================================================================
# Payload Conversion
# =============================================================================

def convert_keys_to_snake_case(obj: Any) -> Any:
    """Recursively convert dictionary keys from camelCase to snake_case."""

    def to_snake_case(name: str) -> str:
        name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
        name = re.sub(r'([a-z\d])([A-Z])', r'\1_\2', name)
        return name.lower()

    if isinstance(obj, dict):
        return {to_snake_case(k): convert_keys_to_snake_case(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_keys_to_snake_case(item) for item in obj]
    else:
        return obj
