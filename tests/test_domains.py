"""Tests for candidate domain generation."""

from __future__ import annotations

from timetable_engine.data.models import LockedAssignment, PeriodRef, Room, RoomType, Teacher
from timetable_engine.domains import (
    NO_QUALIFIED_TEACHER,
    ROOM_CAPACITY_EXHAUSTED,
    generate_domains,
    room_classes,
)
from timetable_engine.errors import UnsatisfiableRequirementError
from timetable_engine.model_builder import build_school_model


class TestGenerateDomains:

    def test_every_teacher_period_pair(self, two_class_request):
        model = build_school_model(two_class_request)
        domains = generate_domains(model)
        assert domains.size(0) == 30
        assert domains.candidates[0][:2] == [(0, 0), (0, 1)]
        assert domains.by_period[0][4] == [4]
        assert domains.unsatisfiable == []
        assert domains.schedulable == list(range(6))

    def test_unavailable_periods_excluded(self, school_request):
        model = build_school_model(school_request)
        domains = generate_domains(model)
        mat = model.requirement_for(0, model.subject_index["mat"])
        values = domains.candidates[mat.occurrences[0]]
        # t1 (idx 0) and t4 (idx 3) teach maths; t1 is out on Monday P1
        assert (0, 0) not in values
        assert (3, 0) in values
        assert len(values) == 29 + 30

    def test_blocked_periods_excluded(self, two_class_request):
        grid = two_class_request.grid.model_copy(update={"blocked": [PeriodRef(day=0, slot=0)]})
        model = build_school_model(two_class_request.model_copy(update={"grid": grid}))
        domains = generate_domains(model)
        assert domains.size(0) == 29
        assert 0 not in domains.by_period[0]

    def test_class_scoped_qualification_leaves_requirement_unsatisfiable(self, restricted_request):
        model = build_school_model(restricted_request)
        domains = generate_domains(model)
        assert [e.requirement_id for e in domains.unsatisfiable] == ["c2/mat"]
        error = domains.unsatisfiable[0]
        assert isinstance(error, UnsatisfiableRequirementError)
        assert error.reason == NO_QUALIFIED_TEACHER
        assert domains.size(3) == 0
        assert domains.schedulable == [0, 1, 2]

    def test_fully_unavailable_teacher(self, two_class_request):
        everything = [PeriodRef(day=d, slot=s) for d in range(5) for s in range(6)]
        teacher = Teacher(id="t1", name="Ada", subjects=["mat"], unavailable=everything)
        model = build_school_model(two_class_request.model_copy(update={"teachers": [teacher]}))
        domains = generate_domains(model)
        assert len(domains.unsatisfiable) == 2
        assert "unavailable in all schedulable periods" in str(domains.unsatisfiable[0])

    def test_no_compatible_room(self, school_request):
        request = school_request.model_copy(update={
            "rooms": [Room(id="r1", name="Room 1", type=RoomType.CLASSROOM)],
        })
        model = build_school_model(request)
        domains = generate_domains(model)
        assert {e.requirement_id for e in domains.unsatisfiable} == {"c1/sci", "c2/sci", "c3/sci"}
        assert all(e.reason == ROOM_CAPACITY_EXHAUSTED for e in domains.unsatisfiable)

    def test_room_groups(self, school_request):
        model = build_school_model(school_request)
        domains = generate_domains(model)
        assert set(domains.room_groups) == {0b111, 0b100}
        assert len(domains.room_groups[0b100]) == 6
        assert len(domains.room_groups[0b111]) == 21

    def test_room_classes(self, school_request):
        domains = generate_domains(build_school_model(school_request))
        # r1 and r2 are interchangeable; the lab is also wanted by science
        assert domains.room_classes == [0b011, 0b100]

    def test_room_classes_least_contended_first(self, nested_rooms_request):
        model = build_school_model(nested_rooms_request)
        domains = generate_domains(model)
        assert domains.room_classes == [1 << model.room_index["r1"], 1 << model.room_index["lab"]]

    def test_unusable_rooms_left_out(self):
        assert room_classes(3, {0b011: [0, 1]}) == [0b011]
        assert room_classes(2, {}) == []

    def test_locked_occurrence_has_single_value(self, two_class_request):
        request = two_class_request.model_copy(update={
            "locked": [LockedAssignment(class_id="c1", subject_id="mat", teacher_id="t1", day=2, slot=1)],
        })
        model = build_school_model(request)
        domains = generate_domains(model)
        assert domains.candidates[0] == [(0, 13)]
        assert domains.size(1) == 30
