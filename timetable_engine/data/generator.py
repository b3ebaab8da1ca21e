"""
Synthetic school generator for tests, demos and benchmarks.

Usage:
    from timetable_engine.data.generator import generate_request, generate_small_school

    # Custom shape
    request = generate_request(GeneratorConfig(num_classes=10, num_teachers=14))

    # Presets
    small = generate_small_school(seed=1)
    tight = generate_tight_school()   # over-subscribed on purpose
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Optional

from .models import (
    ClassSubjectRequirement,
    GenerationRequest,
    PeriodGrid,
    PeriodRef,
    Room,
    RoomType,
    SchoolClass,
    Subject,
    Teacher,
)


# =============================================================================
# Name Data
# =============================================================================

FIRST_NAMES = [
    "James", "John", "Robert", "Michael", "David", "William", "Richard", "Joseph",
    "Thomas", "Sarah", "Jessica", "Emily", "Amanda", "Elizabeth", "Jennifer", "Rachel",
    "Laura", "Emma", "Olivia", "Sophia", "Charlotte", "Daniel", "Matthew", "Andrew",
    "Samuel", "Henry", "Oliver", "Grace", "Hannah", "Natalie", "Lucy", "Amelia",
]

LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Wilson", "Anderson", "Taylor", "Moore", "Jackson", "Martin", "Lee", "Thompson",
    "White", "Harris", "Clark", "Lewis", "Robinson", "Walker", "Young", "Allen",
    "King", "Wright", "Scott", "Hill", "Green", "Adams", "Baker", "Carter",
]


# =============================================================================
# Subject Definitions
# =============================================================================

# (id, name, required room type, periods per week)
SUBJECT_CATALOG: list[tuple[str, str, Optional[RoomType], int]] = [
    ("eng", "English", None, 5),
    ("mat", "Mathematics", None, 5),
    ("sci", "Science", RoomType.SCIENCE_LAB, 4),
    ("his", "History", None, 2),
    ("geo", "Geography", None, 2),
    ("pe", "Physical Education", RoomType.GYM, 2),
    ("art", "Art", RoomType.ART_ROOM, 1),
    ("mus", "Music", RoomType.MUSIC_ROOM, 1),
    ("fre", "French", None, 2),
    ("cmp", "Computing", RoomType.COMPUTER_LAB, 1),
]

SPECIALIST_ROOM_NAMES = {
    RoomType.SCIENCE_LAB: "Science Lab",
    RoomType.GYM: "Sports Hall",
    RoomType.ART_ROOM: "Art Studio",
    RoomType.MUSIC_ROOM: "Music Room",
    RoomType.COMPUTER_LAB: "Computer Lab",
}

# Classes sharing one specialist room
CLASSES_PER_SPECIALIST_ROOM = 6


# =============================================================================
# Generator Configuration
# =============================================================================

@dataclass
class GeneratorConfig:
    """Shape of a generated school.

    Teacher i is qualified for subject i and subject i+1 (mod the subject
    count), so every subject has at least two qualified teachers once there
    are as many teachers as subjects.
    """
    school_id: str = "generated-school"
    term: str = "2025-T1"

    num_classes: int = 8
    num_teachers: int = 10
    num_subjects: int = 6
    periods_per_week: Optional[int] = None  # overrides the catalog value for every subject

    # None keeps the default 5 x 8 grid with break times
    num_days: Optional[int] = None
    slots_per_day: Optional[int] = None

    include_rooms: bool = True
    unavailable_per_teacher: int = 1
    preferred_max_per_day: Optional[int] = 6
    min_students: int = 20
    max_students: int = 30

    seed: Optional[int] = None


# =============================================================================
# Generator Functions
# =============================================================================

def generate_request(config: GeneratorConfig | None = None) -> GenerationRequest:
    """
    Generate a synthetic generation request.

    Args:
        config: Generator configuration (uses defaults if None)

    Returns:
        Validated GenerationRequest
    """
    config = config or GeneratorConfig()
    if not 1 <= config.num_subjects <= len(SUBJECT_CATALOG):
        raise ValueError(f"num_subjects must be between 1 and {len(SUBJECT_CATALOG)}")

    rng = random.Random(config.seed)
    grid = _make_grid(config)
    subjects = [
        Subject(id=sid, name=name, required_room_type=room_type)
        for sid, name, room_type, _ in SUBJECT_CATALOG[:config.num_subjects]
    ]
    classes = _generate_classes(config, rng)
    teachers = _generate_teachers(config, subjects, grid, rng)
    rooms = _generate_rooms(config, subjects) if config.include_rooms else []

    requirements = [
        ClassSubjectRequirement(
            class_id=c.id,
            subject_id=sid,
            periods_per_week=config.periods_per_week or ppw,
        )
        for c in classes
        for sid, _, _, ppw in SUBJECT_CATALOG[:config.num_subjects]
    ]

    return GenerationRequest(
        school_id=config.school_id,
        term=config.term,
        grid=grid,
        classes=classes,
        subjects=subjects,
        teachers=teachers,
        rooms=rooms,
        requirements=requirements,
        seed=config.seed,
    )


def generate_small_school(seed: int | None = None) -> GenerationRequest:
    """
    Generate a small school for quick testing.

    - 4 classes, 6 teachers, 6 subjects (20 periods per class)
    - rooms tracked, one lab and one sports hall
    - well under capacity; expected to solve
    """
    return generate_request(GeneratorConfig(
        school_id="small-school",
        num_classes=4,
        num_teachers=6,
        num_subjects=6,
        seed=seed,
    ))


def generate_medium_school(seed: int | None = None) -> GenerationRequest:
    """
    Generate a medium-sized school.

    - 12 classes, 16 teachers, 8 subjects (22 periods per class)
    - rooms tracked, two labs
    - about 40% teacher utilization
    """
    return generate_request(GeneratorConfig(
        school_id="medium-school",
        num_classes=12,
        num_teachers=16,
        num_subjects=8,
        unavailable_per_teacher=2,
        seed=seed,
    ))


def generate_tight_school(seed: int | None = None) -> GenerationRequest:
    """
    Generate an over-subscribed school for stress testing.

    - 50 classes x 8 subjects x 5 periods = 2000 occurrences
    - 40 teachers on a 5 x 8 grid (1600 teacher-periods)
    - cannot be fully placed; exercises partial results and conflict reports
    """
    return generate_request(GeneratorConfig(
        school_id="tight-school",
        num_classes=50,
        num_teachers=40,
        num_subjects=8,
        periods_per_week=5,
        include_rooms=False,
        unavailable_per_teacher=0,
        preferred_max_per_day=None,
        seed=seed,
    ))


SCHOOL_SIZES = {
    "small": generate_small_school,
    "medium": generate_medium_school,
    "tight": generate_tight_school,
}


def get_generation_stats(request: GenerationRequest) -> dict[str, Any]:
    """Summary of a request plus teacher utilization."""
    stats = request.summary()
    teacher_periods = sum(
        request.grid.schedulable_count - len(t.unavailable) for t in request.teachers
    )
    stats["teacher_periods"] = teacher_periods
    stats["teacher_utilization"] = (
        round(request.total_occurrences / teacher_periods, 3) if teacher_periods else 0.0
    )
    return stats


# =============================================================================
# Private Generator Helpers
# =============================================================================

def _make_grid(config: GeneratorConfig) -> PeriodGrid:
    if config.num_days is None and config.slots_per_day is None:
        return PeriodGrid.default()
    return PeriodGrid(
        num_days=config.num_days or 5,
        slots_per_day=config.slots_per_day or 8,
    )


def _generate_classes(config: GeneratorConfig, rng: random.Random) -> list[SchoolClass]:
    classes = []
    for i in range(config.num_classes):
        year = 7 + i % 5
        form = chr(ord("A") + i // 5 % 26)
        suffix = "" if i < 130 else str(i // 130)
        classes.append(SchoolClass(
            id=f"c{i + 1}",
            name=f"Year {year}{form}{suffix}",
            student_count=rng.randint(config.min_students, config.max_students),
        ))
    return classes


def _generate_teachers(
    config: GeneratorConfig,
    subjects: list[Subject],
    grid: PeriodGrid,
    rng: random.Random,
) -> list[Teacher]:
    teachers = []
    used_names: set[str] = set()
    blocked = {(p.day, p.slot) for p in grid.blocked}
    open_periods = [
        PeriodRef(day=d, slot=s)
        for d in range(grid.num_days)
        for s in range(grid.slots_per_day)
        if (d, s) not in blocked
    ]

    for i in range(config.num_teachers):
        # Unique name, numbered once the combinations run out
        name = f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"
        if name in used_names:
            name = f"{name} {i + 1}"
        used_names.add(name)

        qualified = [subjects[i % len(subjects)].id]
        second = subjects[(i + 1) % len(subjects)].id
        if second not in qualified:
            qualified.append(second)

        count = min(config.unavailable_per_teacher, len(open_periods))
        unavailable = sorted(rng.sample(open_periods, count), key=lambda p: (p.day, p.slot))

        teachers.append(Teacher(
            id=f"t{i + 1}",
            name=name,
            subjects=qualified,
            unavailable=unavailable,
            preferred_max_per_day=config.preferred_max_per_day,
        ))
    return teachers


def _generate_rooms(config: GeneratorConfig, subjects: list[Subject]) -> list[Room]:
    rooms = [
        Room(id=f"r{i + 1}", name=f"Room {101 + i}", type=RoomType.CLASSROOM, capacity=32)
        for i in range(config.num_classes)
    ]
    specialist_count = max(1, math.ceil(config.num_classes / CLASSES_PER_SPECIALIST_ROOM))
    for subject in subjects:
        room_type = subject.required_room_type
        if room_type is None:
            continue
        label = SPECIALIST_ROOM_NAMES.get(room_type, room_type.value.replace("_", " ").title())
        for n in range(specialist_count):
            rooms.append(Room(
                id=f"{room_type.value}-{n + 1}",
                name=f"{label} {n + 1}",
                type=room_type,
                capacity=32,
            ))
    return rooms
