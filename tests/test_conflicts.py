"""Tests for the conflict report of incomplete timetables."""

from __future__ import annotations

from timetable_engine.conflicts import BUDGET_EXHAUSTED, build_conflict_report
from timetable_engine.constraints import Placement
from timetable_engine.data.models import (
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
from timetable_engine.domains import (
    NO_QUALIFIED_TEACHER,
    ROOM_CAPACITY_EXHAUSTED,
    TEACHERS_SATURATED,
    generate_domains,
)
from timetable_engine.model_builder import build_school_model


def report_for(request, placements):
    model = build_school_model(request)
    return build_conflict_report(model, generate_domains(model), placements)


class TestConflictReport:

    def test_complete_timetable_has_empty_report(self, two_class_request):
        placements = {o: Placement(0, o * 5) for o in range(6)}
        report = report_for(two_class_request, placements)
        assert report.is_empty
        assert report.total_unplaced == 0

    def test_saturated_teacher(self, pigeonhole_request):
        placements = {0: Placement(0, 0), 1: Placement(0, 1), 2: Placement(0, 2)}
        report = report_for(pigeonhole_request, placements)
        assert report.total_unplaced == 1
        assert len(report.entries) == 1

        entry = report.for_requirement("c2/mat")
        assert entry.reason == TEACHERS_SATURATED
        assert entry.unplaced == 1
        assert entry.class_id == "c2"
        assert entry.subject_id == "mat"
        assert entry.contended_periods == [PeriodRef(day=0, slot=s) for s in range(3)]
        assert [(c.requirement_id, c.slot) for c in entry.competing] == [
            ("c1/mat", 0),
            ("c1/mat", 1),
            ("c2/mat", 2),
        ]
        assert all(c.teacher_id == "t1" for c in entry.competing)

    def test_budget_exhausted_when_free_values_remain(self, two_class_request):
        report = report_for(two_class_request, {0: Placement(0, 0)})
        assert report.total_unplaced == 5
        assert [e.reason for e in report.entries] == [BUDGET_EXHAUSTED, BUDGET_EXHAUSTED]
        assert report.for_requirement("c1/mat").unplaced == 2
        assert report.for_requirement("c2/mat").unplaced == 3

    def test_room_capacity_exhausted(self):
        request = GenerationRequest(
            school_id="labs",
            grid=PeriodGrid(num_days=1, slots_per_day=2),
            classes=[SchoolClass(id="c1", name="A"), SchoolClass(id="c2", name="B")],
            subjects=[Subject(id="sci", name="Science", required_room_type=RoomType.SCIENCE_LAB)],
            teachers=[
                Teacher(id="t1", name="Curie", subjects=["sci"]),
                Teacher(id="t2", name="Faraday", subjects=["sci"]),
            ],
            rooms=[Room(id="lab1", name="Lab", type=RoomType.SCIENCE_LAB)],
            requirements=[
                ClassSubjectRequirement(class_id="c1", subject_id="sci", periods_per_week=2),
                ClassSubjectRequirement(class_id="c2", subject_id="sci", periods_per_week=2),
            ],
        )
        placements = {0: Placement(0, 0, 0), 1: Placement(0, 1, 0)}
        report = report_for(request, placements)
        entry = report.for_requirement("c2/sci")
        assert entry.reason == ROOM_CAPACITY_EXHAUSTED
        assert entry.unplaced == 2
        assert [c.room_id for c in entry.competing] == ["lab1", "lab1"]
        assert report.for_requirement("c1/sci") is None

    def test_unsatisfiable_requirement(self, restricted_request):
        placements = {o: Placement(0, o) for o in range(3)}
        report = report_for(restricted_request, placements)
        entry = report.for_requirement("c2/mat")
        assert entry.reason == NO_QUALIFIED_TEACHER
        assert entry.unplaced == 3
        assert entry.competing == []

    def test_serializes_with_camel_case(self, pigeonhole_request):
        placements = {0: Placement(0, 0), 1: Placement(0, 1), 2: Placement(0, 2)}
        data = report_for(pigeonhole_request, placements).model_dump(by_alias=True)
        assert data["totalUnplaced"] == 1
        assert data["entries"][0]["requirementId"] == "c2/mat"
        assert "contendedPeriods" in data["entries"][0]
