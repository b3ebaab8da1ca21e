"""Tests for the SchoolModel builder."""

from __future__ import annotations

import pytest

from timetable_engine.data.models import (
    ClassSubjectRequirement,
    LockedAssignment,
    PeriodGrid,
    PeriodRef,
    Room,
    RoomType,
    Subject,
)
from timetable_engine.errors import InvalidInputError
from timetable_engine.model_builder import TimetableModelBuilder, build_school_model, capacity_warnings


class TestBuild:

    def test_indices_and_occurrences(self, two_class_request):
        model = build_school_model(two_class_request)
        assert model.teacher_ids == ["t1"]
        assert model.class_ids == ["c1", "c2"]
        assert model.num_periods == 30
        assert model.total_occurrences == 6
        assert [o.class_idx for o in model.occurrences] == [0, 0, 0, 1, 1, 1]
        assert [o.ordinal for o in model.occurrences] == [0, 1, 2, 0, 1, 2]
        assert model.requirements[1].occurrences == [3, 4, 5]
        assert model.class_occurrences == [[0, 1, 2], [3, 4, 5]]
        assert model.teacher_occurrences == [[0, 1, 2, 3, 4, 5]]
        assert not model.rooms_tracked

    def test_period_arithmetic(self, two_class_request):
        model = build_school_model(two_class_request)
        assert model.period(2, 3) == 15
        assert model.day_slot(15) == (2, 3)
        assert model.period_label(15) == "Wednesday P4"
        assert model.period_ref(7) == PeriodRef(day=1, slot=1)
        assert model.schedulable_mask == (1 << 30) - 1

    def test_describe(self, two_class_request):
        model = build_school_model(two_class_request)
        assert model.describe(4) == "c2/mat#2"

    def test_unavailability_mask(self, school_request):
        model = build_school_model(school_request)
        assert model.teacher_unavailable[0] == 1
        assert model.teacher_unavailable[1] == 0
        assert model.teacher_max_per_day[2] == 3

    def test_class_scoped_qualification(self, restricted_request):
        model = build_school_model(restricted_request)
        assert model.requirements[0].qualified_teachers == [0]
        assert model.requirements[1].qualified_teachers == []
        assert model.teacher_occurrences == [[0, 1, 2]]

    def test_room_masks(self, school_request):
        model = build_school_model(school_request)
        mat = model.requirement_for(0, model.subject_index["mat"])
        sci = model.requirement_for(0, model.subject_index["sci"])
        assert mat.room_mask == 0b111
        assert sci.room_mask == 0b100

    def test_from_camel_case_payload(self):
        payload = {
            "schoolId": "s1",
            "grid": {"numDays": 1, "slotsPerDay": 2},
            "classes": [{"id": "c1", "name": "A"}],
            "subjects": [{"id": "mat", "name": "Maths"}],
            "teachers": [{"id": "t1", "name": "T", "subjects": ["mat"]}],
            "requirements": [{"classId": "c1", "subjectId": "mat", "periodsPerWeek": 2}],
        }
        model = build_school_model(payload)
        assert model.total_occurrences == 2


class TestRejections:

    def test_demand_exceeds_grid(self, two_class_request):
        request = two_class_request.model_copy(update={
            "grid": PeriodGrid(num_days=1, slots_per_day=2),
        })
        with pytest.raises(InvalidInputError, match="exceeds the 2 schedulable periods"):
            TimetableModelBuilder(request).build()

    def test_blocked_periods_count_against_capacity(self, two_class_request):
        request = two_class_request.model_copy(update={
            "grid": PeriodGrid(num_days=1, slots_per_day=3, blocked=[PeriodRef(day=0, slot=1)]),
        })
        with pytest.raises(InvalidInputError, match="exceeds the 2 schedulable periods"):
            build_school_model(request)

    def test_subject_nobody_teaches(self, two_class_request):
        request = two_class_request.model_copy(update={
            "subjects": [*two_class_request.subjects, Subject(id="art", name="Art")],
            "requirements": [
                *two_class_request.requirements,
                ClassSubjectRequirement(class_id="c1", subject_id="art", periods_per_week=1),
            ],
        })
        with pytest.raises(InvalidInputError) as exc:
            build_school_model(request)
        assert exc.value.errors == [
            "Requirement c1/art: no teacher in the roster is qualified for subject 'art'"
        ]

    def test_all_problems_collected(self, two_class_request):
        request = two_class_request.model_copy(update={
            "grid": PeriodGrid(num_days=1, slots_per_day=2),
        })
        with pytest.raises(InvalidInputError) as exc:
            build_school_model(request)
        assert len(exc.value.errors) == 2

    def test_malformed_payload(self):
        with pytest.raises(InvalidInputError):
            build_school_model({"schoolId": "s1"})


class TestLocks:

    def test_lock_binds_first_occurrence(self, two_class_request):
        request = two_class_request.model_copy(update={
            "locked": [LockedAssignment(class_id="c2", subject_id="mat", teacher_id="t1", day=1, slot=2)],
        })
        model = build_school_model(request)
        assert list(model.locked) == [3]
        assert model.locked[3].period == 8
        assert model.locked[3].teacher == 0

    def test_lock_on_unavailable_teacher(self, school_request):
        request = school_request.model_copy(update={
            "locked": [LockedAssignment(class_id="c1", subject_id="mat", teacher_id="t1", day=0, slot=0)],
        })
        with pytest.raises(InvalidInputError, match="is unavailable"):
            build_school_model(request)

    def test_lock_unqualified_teacher(self, school_request):
        request = school_request.model_copy(update={
            "locked": [LockedAssignment(class_id="c1", subject_id="sci", teacher_id="t2", day=0, slot=1)],
        })
        with pytest.raises(InvalidInputError, match="not qualified"):
            build_school_model(request)

    def test_conflicting_locks(self, two_class_request):
        request = two_class_request.model_copy(update={
            "locked": [
                LockedAssignment(class_id="c1", subject_id="mat", teacher_id="t1", day=0, slot=0),
                LockedAssignment(class_id="c2", subject_id="mat", teacher_id="t1", day=0, slot=0),
            ],
        })
        with pytest.raises(InvalidInputError, match="double-booked by another lock"):
            build_school_model(request)

    def test_lock_in_incompatible_room(self, school_request):
        request = school_request.model_copy(update={
            "locked": [
                LockedAssignment(class_id="c1", subject_id="sci", teacher_id="t3", day=0, slot=0, room_id="r1"),
            ],
        })
        with pytest.raises(InvalidInputError, match="room 'r1' is incompatible"):
            build_school_model(request)

    def test_too_many_locks(self, two_class_request):
        request = two_class_request.model_copy(update={
            "locked": [
                LockedAssignment(class_id="c1", subject_id="mat", teacher_id="t1", day=d, slot=0)
                for d in range(4)
            ],
        })
        with pytest.raises(InvalidInputError, match="more locks than the 3 periods"):
            build_school_model(request)


class TestCapacityWarnings:

    def test_no_warnings_for_easy_request(self, school_request):
        assert capacity_warnings(build_school_model(school_request)) == []

    def test_single_teacher_overloaded(self, pigeonhole_request):
        warnings = capacity_warnings(build_school_model(pigeonhole_request))
        assert warnings == ["Teacher t1 is the only option for 4 periods but is available for 3"]

    def test_room_type_without_rooms_is_not_a_capacity_warning(self, school_request):
        request = school_request.model_copy(update={
            "rooms": [Room(id="r1", name="Room 1", type=RoomType.CLASSROOM)],
        })
        assert capacity_warnings(build_school_model(request)) == []
