"""Shared fixtures: small requests built from the pydantic models."""

from __future__ import annotations

import pytest

from timetable_engine.config import EngineSettings
from timetable_engine.data.models import (
    ClassSubjectRequirement,
    GenerationRequest,
    LockedAssignment,
    PeriodGrid,
    PeriodRef,
    Qualification,
    Room,
    RoomType,
    SchoolClass,
    Subject,
    Teacher,
)


@pytest.fixture
def settings() -> EngineSettings:
    """Settings with budgets small enough for unit tests."""
    return EngineSettings(
        time_limit_seconds=20.0,
        repair_time_limit_seconds=10.0,
        repair_iterations=2_000,
        min_node_budget=5_000,
        parallel_trials=1,
        environment="testing",
    )


@pytest.fixture
def two_class_request() -> GenerationRequest:
    """2 classes x 1 subject x 3 periods, one shared teacher, 5 x 6 grid."""
    return GenerationRequest(
        school_id="school-1",
        term="2025-T1",
        grid=PeriodGrid(num_days=5, slots_per_day=6),
        classes=[
            SchoolClass(id="c1", name="Year 7A"),
            SchoolClass(id="c2", name="Year 7B"),
        ],
        subjects=[Subject(id="mat", name="Mathematics")],
        teachers=[Teacher(id="t1", name="Ada Lovelace", subjects=["mat"])],
        requirements=[
            ClassSubjectRequirement(class_id="c1", subject_id="mat", periods_per_week=3),
            ClassSubjectRequirement(class_id="c2", subject_id="mat", periods_per_week=3),
        ],
        seed=7,
    )


@pytest.fixture
def restricted_request(two_class_request) -> GenerationRequest:
    """The two-class school with the teacher's maths qualification limited to c1."""
    teacher = Teacher(
        id="t1",
        name="Ada Lovelace",
        subjects=[Qualification(subject_id="mat", class_ids=("c1",))],
    )
    return two_class_request.model_copy(update={"teachers": [teacher]})


@pytest.fixture
def school_request() -> GenerationRequest:
    """Three classes, three subjects, tracked rooms with one lab."""
    return GenerationRequest(
        school_id="school-2",
        grid=PeriodGrid(num_days=5, slots_per_day=6),
        classes=[
            SchoolClass(id="c1", name="Year 8A", student_count=25),
            SchoolClass(id="c2", name="Year 8B", student_count=28),
            SchoolClass(id="c3", name="Year 8C", student_count=20),
        ],
        subjects=[
            Subject(id="mat", name="Mathematics"),
            Subject(id="eng", name="English"),
            Subject(id="sci", name="Science", required_room_type=RoomType.SCIENCE_LAB),
        ],
        teachers=[
            Teacher(id="t1", name="Alan Turing", subjects=["mat"], unavailable=[PeriodRef(day=0, slot=0)]),
            Teacher(id="t2", name="Jane Austen", subjects=["eng"]),
            Teacher(id="t3", name="Marie Curie", subjects=["sci"], preferred_max_per_day=3),
            Teacher(id="t4", name="Emmy Noether", subjects=["mat", "eng"]),
        ],
        rooms=[
            Room(id="r1", name="Room 101", type=RoomType.CLASSROOM, capacity=30),
            Room(id="r2", name="Room 102", type=RoomType.CLASSROOM, capacity=30),
            Room(id="lab1", name="Lab 1", type=RoomType.SCIENCE_LAB, capacity=30),
        ],
        requirements=[
            ClassSubjectRequirement(class_id=c, subject_id=s, periods_per_week=n)
            for c in ("c1", "c2", "c3")
            for s, n in (("mat", 4), ("eng", 3), ("sci", 2))
        ],
        seed=42,
    )


@pytest.fixture
def pigeonhole_request() -> GenerationRequest:
    """Four occurrences for one teacher who only has three periods."""
    return GenerationRequest(
        school_id="school-3",
        grid=PeriodGrid(num_days=1, slots_per_day=3),
        classes=[
            SchoolClass(id="c1", name="Class 1"),
            SchoolClass(id="c2", name="Class 2"),
        ],
        subjects=[Subject(id="mat", name="Mathematics")],
        teachers=[Teacher(id="t1", name="Ada Lovelace", subjects=["mat"])],
        requirements=[
            ClassSubjectRequirement(class_id="c1", subject_id="mat", periods_per_week=2),
            ClassSubjectRequirement(class_id="c2", subject_id="mat", periods_per_week=2),
        ],
        seed=3,
    )


@pytest.fixture
def nested_rooms_request() -> GenerationRequest:
    """One period, a lab and a classroom; English fits either room, science only the lab."""
    return GenerationRequest(
        school_id="school-4",
        grid=PeriodGrid(num_days=1, slots_per_day=1),
        classes=[
            SchoolClass(id="a", name="Class A"),
            SchoolClass(id="b", name="Class B"),
        ],
        subjects=[
            Subject(id="eng", name="English"),
            Subject(id="sci", name="Science", required_room_type=RoomType.SCIENCE_LAB),
        ],
        teachers=[
            Teacher(id="t1", name="Jane Austen", subjects=["eng"]),
            Teacher(id="t2", name="Marie Curie", subjects=["sci"]),
        ],
        rooms=[
            Room(id="lab", name="Lab", type=RoomType.SCIENCE_LAB),
            Room(id="r1", name="Room 1", type=RoomType.CLASSROOM),
        ],
        requirements=[
            ClassSubjectRequirement(class_id="a", subject_id="eng", periods_per_week=1),
            ClassSubjectRequirement(class_id="b", subject_id="sci", periods_per_week=1),
        ],
        seed=5,
    )


@pytest.fixture
def two_lab_request(nested_rooms_request) -> GenerationRequest:
    """The nested-rooms school with two labs and both lessons locked to Monday P1."""
    return nested_rooms_request.model_copy(update={
        "rooms": [
            Room(id="lab", name="Lab", type=RoomType.SCIENCE_LAB),
            Room(id="r1", name="Lab 2", type=RoomType.SCIENCE_LAB),
        ],
        "locked": [
            LockedAssignment(class_id="a", subject_id="eng", teacher_id="t1", day=0, slot=0),
            LockedAssignment(class_id="b", subject_id="sci", teacher_id="t2", day=0, slot=0, room_id="lab"),
        ],
    })
