"""Tests for committing timetables and re-validating manual edits."""

from __future__ import annotations

import pytest

from timetable_engine.data.models import (
    ClassSubjectRequirement,
    GenerationRequest,
    PeriodGrid,
    PeriodRef,
    SchoolClass,
    Subject,
    Teacher,
)
from timetable_engine.engine import TimetableGenerator
from timetable_engine.errors import ManualEditRejected, TimetableEngineError, TimetableInvariantError
from timetable_engine.output.persist import (
    InMemoryTimetableStore,
    JsonTimetableStore,
    apply_edit,
    commit_result,
    persisted_from_result,
    revalidate_edit,
    verify_timetable,
)
from timetable_engine.output.schema import Cell, ManualEdit, PersistedTimetable, SolveState


@pytest.fixture
def edit_request() -> GenerationRequest:
    return GenerationRequest(
        school_id="school-e",
        grid=PeriodGrid(num_days=2, slots_per_day=3),
        classes=[SchoolClass(id="c1", name="A"), SchoolClass(id="c2", name="B")],
        subjects=[Subject(id="mat", name="Maths"), Subject(id="eng", name="English")],
        teachers=[
            Teacher(id="t1", name="One", subjects=["mat"]),
            Teacher(id="t2", name="Two", subjects=["mat"]),
            Teacher(id="t3", name="Three", subjects=["eng"]),
            Teacher(id="t4", name="Four", subjects=["mat"], unavailable=[PeriodRef(day=0, slot=0)]),
        ],
        requirements=[
            ClassSubjectRequirement(class_id="c1", subject_id="mat", periods_per_week=2),
            ClassSubjectRequirement(class_id="c2", subject_id="mat", periods_per_week=2),
        ],
    )


def mat(teacher_id: str) -> Cell:
    return Cell(teacherId=teacher_id, subjectId="mat")


@pytest.fixture
def timetable(edit_request) -> PersistedTimetable:
    grid = {
        "c1": [[mat("t1"), None, None], [mat("t1"), None, None]],
        "c2": [[mat("t2"), None, None], [None, mat("t2"), None]],
    }
    return PersistedTimetable(
        id="tt1",
        schoolId="school-e",
        runId="run-1",
        seed=1,
        timetable=grid,
        request=edit_request,
    )


def edit(class_id: str, day: int, slot: int, teacher_id: str, **kwargs) -> ManualEdit:
    return ManualEdit(timetableId="tt1", classId=class_id, day=day, slot=slot, teacherId=teacher_id, **kwargs)


# =============================================================================
# Verification and commit
# =============================================================================

class TestCommit:

    def test_valid_timetable_verifies(self, timetable):
        assert verify_timetable(timetable) == []

    def test_commit_and_get(self, timetable):
        store = InMemoryTimetableStore()
        store.commit(timetable)
        loaded = store.get("tt1")
        assert loaded.timetable == timetable.timetable
        assert store.list_ids() == ["tt1"]
        assert store.list_ids(school_id="other") == []

    def test_get_missing(self):
        with pytest.raises(KeyError):
            InMemoryTimetableStore().get("nope")

    def test_double_booked_teacher_refused(self, timetable):
        grid = dict(timetable.timetable)
        grid["c2"] = [[mat("t1"), None, None], [None, mat("t2"), None]]
        broken = timetable.model_copy(update={"timetable": grid})
        with pytest.raises(TimetableInvariantError) as exc:
            InMemoryTimetableStore().commit(broken)
        assert any(v.startswith("teacher_double_booked") for v in exc.value.violations)

    def test_incomplete_timetable_refused(self, timetable):
        grid = dict(timetable.timetable)
        grid["c2"] = [[mat("t2"), None, None], [None, None, None]]
        with pytest.raises(TimetableInvariantError, match="requirement_incomplete"):
            InMemoryTimetableStore().commit(timetable.model_copy(update={"timetable": grid}))

    def test_unknown_teacher_refused(self, timetable):
        grid = dict(timetable.timetable)
        grid["c1"] = [[mat("tx"), None, None], [mat("t1"), None, None]]
        violations = verify_timetable(timetable.model_copy(update={"timetable": grid}))
        assert violations[0].constraint == "teacher_not_qualified"

    def test_json_store_round_trip(self, tmp_path, timetable):
        store = JsonTimetableStore(tmp_path / "store")
        store.commit(timetable)
        assert (tmp_path / "store" / "tt1.json").exists()
        assert JsonTimetableStore(tmp_path / "store").get("tt1").timetable == timetable.timetable
        assert store.list_ids(school_id="school-e") == ["tt1"]
        assert list((tmp_path / "store").glob(".tmp-*")) == []


class TestFromResult:

    def test_solved_result_committed(self, settings, two_class_request):
        result = TimetableGenerator(settings).generate(two_class_request, run_id="run-42")
        store = InMemoryTimetableStore()
        persisted = commit_result(store, result)
        assert persisted.id == "run-42"
        assert persisted.seed == 7
        assert persisted.score == result.score
        assert store.get("run-42").request == two_class_request

    def test_partial_result_refused(self, settings, restricted_request):
        result = TimetableGenerator(settings).generate(restricted_request)
        assert result.status == SolveState.PARTIAL
        with pytest.raises(TimetableEngineError, match="Only solved timetables"):
            persisted_from_result(result)

    def test_result_without_request_refused(self, settings, two_class_request):
        result = TimetableGenerator(settings).generate(two_class_request)
        with pytest.raises(TimetableEngineError, match="no source request"):
            persisted_from_result(result.model_copy(update={"request": None}))


# =============================================================================
# Manual edits
# =============================================================================

class TestRevalidateEdit:

    def test_teacher_double_booked(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 0, 0, "t2"))
        assert not result.accepted
        assert result.violated_constraint == "teacher_double_booked"

    def test_unqualified_teacher(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 0, 0, "t3"))
        assert result.violated_constraint == "teacher_not_qualified"

    def test_unavailable_teacher(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 0, 0, "t4"))
        assert result.violated_constraint == "teacher_unavailable"

    def test_unknown_teacher(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 0, 0, "tx"))
        assert result.violated_constraint == "teacher_not_qualified"
        assert "unknown teacher" in result.detail

    def test_empty_cell(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 0, 1, "t1"))
        assert result.violated_constraint == "requirement_incomplete"

    def test_cell_outside_grid(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 5, 0, "t1"))
        assert result.violated_constraint == "period_not_schedulable"

    def test_accepted(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 1, 0, "t2"))
        assert result.accepted
        assert result.violated_constraint is None
        result.raise_for_rejection()

    def test_same_teacher_is_accepted(self, timetable):
        assert revalidate_edit(timetable, edit("c1", 0, 0, "t1")).accepted

    def test_room_given_without_rooms_tracked(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 1, 0, "t2", roomId="r1"))
        assert result.violated_constraint == "room_incompatible"

    def test_wrong_timetable(self, timetable):
        with pytest.raises(ValueError):
            revalidate_edit(timetable, ManualEdit(timetableId="other", classId="c1", day=0, slot=0, teacherId="t1"))

    def test_raise_for_rejection(self, timetable):
        result = revalidate_edit(timetable, edit("c1", 0, 0, "t2"))
        with pytest.raises(ManualEditRejected) as exc:
            result.raise_for_rejection()
        assert exc.value.violated_constraint == "teacher_double_booked"


class TestApplyEdit:

    def test_accepted_edit_is_committed(self, timetable):
        store = InMemoryTimetableStore()
        store.commit(timetable)
        result = apply_edit(store, edit("c1", 1, 0, "t2"))
        assert result.accepted

        updated = store.get("tt1")
        assert updated.cell("c1", 1, 0).teacher_id == "t2"
        assert len(updated.edited_cells) == 1
        record = updated.edited_cells[0]
        assert record.previous_teacher_id == "t1"
        assert record.teacher_id == "t2"
        assert verify_timetable(updated) == []

    def test_rejected_edit_leaves_store_unchanged(self, timetable):
        store = InMemoryTimetableStore()
        store.commit(timetable)
        result = apply_edit(store, edit("c1", 0, 0, "t2"))
        assert not result.accepted
        assert store.get("tt1").cell("c1", 0, 0).teacher_id == "t1"
        assert store.get("tt1").edited_cells == []

    def test_revalidation_is_idempotent(self, timetable):
        store = InMemoryTimetableStore()
        store.commit(timetable)
        change = edit("c1", 1, 0, "t2")
        apply_edit(store, change)
        assert revalidate_edit(store.get("tt1"), change).accepted
        # the old teacher's slot is now free for the other class
        assert revalidate_edit(store.get("tt1"), edit("c2", 1, 1, "t1")).accepted
