"""Tests for timetable improvement suggestions."""

from __future__ import annotations

from timetable_engine.data.models import BreakTime, PeriodGrid, Teacher
from timetable_engine.output.schema import Cell, empty_grid
from timetable_engine.output.suggestions import generate_suggestions


def mat() -> Cell:
    return Cell(teacherId="t1", subjectId="mat")


class TestSuggestions:

    def test_clean_timetable(self, two_class_request):
        grid = empty_grid(["c1", "c2"], 5, 6)
        grid["c1"][0][0] = mat()
        grid["c1"][1][0] = mat()
        grid["c2"][0][1] = mat()
        assert generate_suggestions(two_class_request, grid) == []

    def test_subject_overload(self, two_class_request):
        grid = empty_grid(["c1", "c2"], 5, 6)
        for slot in (0, 2, 4):
            grid["c1"][1][slot] = mat()
        kinds = [s.kind for s in generate_suggestions(two_class_request, grid)]
        assert "distribution" in kinds
        overload = next(s for s in generate_suggestions(two_class_request, grid) if s.kind == "distribution")
        assert overload.class_id == "c1"
        assert overload.day == 1
        assert "3 times on Tuesday" in overload.message

    def test_consecutive_periods(self, two_class_request):
        grid = empty_grid(["c1", "c2"], 5, 6)
        grid["c1"][2][3] = mat()
        grid["c1"][2][4] = mat()
        suggestions = generate_suggestions(two_class_request, grid)
        assert [s.kind for s in suggestions] == ["consecutive"]
        assert "(P4-P5) on Wednesday" in suggestions[0].message

    def test_break_separates_periods(self, two_class_request):
        grid_def = PeriodGrid(
            num_days=5,
            slots_per_day=6,
            breaks=[BreakTime(name="Lunch", after_slot=3, start="12:00", end="12:45")],
        )
        request = two_class_request.model_copy(update={"grid": grid_def})
        grid = empty_grid(["c1", "c2"], 5, 6)
        grid["c1"][2][3] = mat()
        grid["c1"][2][4] = mat()
        assert generate_suggestions(request, grid) == []

    def test_teacher_load_and_gaps(self, two_class_request):
        teacher = Teacher(id="t1", name="Ada Lovelace", subjects=["mat"], preferred_max_per_day=1)
        request = two_class_request.model_copy(update={"teachers": [teacher]})
        grid = empty_grid(["c1", "c2"], 5, 6)
        grid["c1"][0][0] = mat()
        grid["c2"][0][5] = mat()
        suggestions = generate_suggestions(request, grid)
        assert sorted(s.kind for s in suggestions) == ["gaps", "teacher_load"]
        assert all(s.teacher_id == "t1" for s in suggestions)
        gaps = next(s for s in suggestions if s.kind == "gaps")
        assert "4 idle periods" in gaps.message
