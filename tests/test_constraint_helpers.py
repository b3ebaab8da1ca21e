"""Tests for the per-concern constraint helpers (bitsets, rooms, penalties)."""

from __future__ import annotations

from timetable_engine.constraints import (
    Occupancy,
    Placement,
    compatible_room_mask,
    day_gaps,
    evaluate_room,
    gap_delta,
    has_bit,
    load_excess,
    load_excess_delta,
    periods_to_mask,
    pick_room,
    qualified_teachers,
    room_indices,
    same_day_pairs,
    schedulable_mask,
    spread_penalty,
    teacher_available_mask,
    teacher_load_penalty,
    teaches_subject,
    total_gaps,
)
from timetable_engine.data.models import (
    PeriodGrid,
    PeriodRef,
    Qualification,
    Room,
    RoomType,
    SchoolClass,
    Subject,
    Teacher,
)


# =============================================================================
# No-overlap
# =============================================================================

class TestOccupancy:

    def test_mark_and_clear(self):
        occupancy = Occupancy(num_teachers=2, num_classes=2, num_rooms=2, num_periods=10)
        occupancy.mark(0, 1, Placement(teacher=1, period=3, room=0))
        assert not occupancy.teacher_free(1, 3)
        assert not occupancy.class_free(1, 3)
        assert not occupancy.room_free(0, 3)
        assert occupancy.teacher_free(0, 3)
        assert occupancy.rooms_busy_at[3] == 0b01
        assert occupancy.free_rooms(0b11, 3) == 0b10

        occupancy.clear(1, Placement(1, 3, 0))
        assert occupancy.teacher_free(1, 3)
        assert occupancy.class_free(1, 3)
        assert occupancy.room_free(0, 3)
        assert occupancy.teacher_owner == {}

    def test_blockers(self):
        occupancy = Occupancy(2, 2, 1, 5)
        occupancy.mark(7, 0, Placement(0, 2, 0))
        occupancy.mark(8, 1, Placement(1, 4))
        assert occupancy.blockers(1, Placement(0, 2)) == {7}
        assert occupancy.blockers(1, Placement(0, 4)) == {8}
        assert occupancy.blockers(0, Placement(1, 2, 0)) == {7}
        assert occupancy.blockers(1, Placement(1, 1)) == set()

    def test_has_bit(self):
        assert has_bit(0b100, 2)
        assert not has_bit(0b100, 1)


# =============================================================================
# Availability
# =============================================================================

class TestAvailability:

    def test_periods_to_mask(self):
        refs = [PeriodRef(day=0, slot=1), PeriodRef(day=1, slot=0)]
        assert periods_to_mask(refs, slots_per_day=4) == (1 << 1) | (1 << 4)

    def test_schedulable_mask(self):
        grid = PeriodGrid(num_days=1, slots_per_day=4, blocked=[PeriodRef(day=0, slot=2)])
        assert schedulable_mask(grid) == 0b1011

    def test_teacher_available_mask(self):
        grid = PeriodGrid(num_days=1, slots_per_day=4, blocked=[PeriodRef(day=0, slot=2)])
        teacher = Teacher(id="t1", name="Ada", unavailable=[PeriodRef(day=0, slot=0)])
        assert teacher_available_mask(teacher, grid) == 0b1010

    def test_qualified_teachers(self):
        teachers = [
            Teacher(id="t1", name="A", subjects=["mat"]),
            Teacher(id="t2", name="B", subjects=[Qualification(subject_id="mat", class_ids=("c2",))]),
            Teacher(id="t3", name="C", subjects=["eng"]),
        ]
        assert qualified_teachers(teachers, "mat", "c1") == [0]
        assert qualified_teachers(teachers, "mat", "c2") == [0, 1]
        assert teaches_subject(teachers, "eng")
        assert not teaches_subject(teachers, "art")


# =============================================================================
# Rooms
# =============================================================================

class TestRooms:

    def test_type_mismatch(self):
        result = evaluate_room(
            Room(id="r1", name="R1", type=RoomType.CLASSROOM),
            0,
            Subject(id="sci", name="Science", required_room_type=RoomType.SCIENCE_LAB),
            SchoolClass(id="c1", name="7A"),
        )
        assert not result.is_valid
        assert result.reasons == ["Requires room type science_lab, got classroom"]

    def test_capacity_too_small(self):
        result = evaluate_room(
            Room(id="r1", name="R1", capacity=20),
            0,
            Subject(id="mat", name="Maths"),
            SchoolClass(id="c1", name="7A", student_count=25),
        )
        assert not result.is_valid
        assert "capacity 20 < class size 25" in result.reasons[0]

    def test_unknown_sizes_are_compatible(self):
        result = evaluate_room(Room(id="r1", name="R1"), 0, Subject(id="mat", name="Maths"),
                               SchoolClass(id="c1", name="7A", student_count=25))
        assert result.is_valid

    def test_compatible_room_mask(self):
        rooms = [
            Room(id="r1", name="R1", capacity=30),
            Room(id="lab", name="Lab", type=RoomType.SCIENCE_LAB, capacity=30),
            Room(id="r2", name="R2", capacity=10),
        ]
        school_class = SchoolClass(id="c1", name="7A", student_count=25)
        assert compatible_room_mask(rooms, Subject(id="mat", name="Maths"), school_class) == 0b011
        science = Subject(id="sci", name="Science", required_room_type=RoomType.SCIENCE_LAB)
        assert compatible_room_mask(rooms, science, school_class) == 0b010

    def test_pick_room_lowest_free(self):
        assert pick_room(0b1110, 0b0010) == 2
        assert pick_room(0b0110, 0b0110) is None
        assert pick_room(0, 0) is None

    def test_room_indices(self):
        assert room_indices(0b10101) == [0, 2, 4]
        assert room_indices(0) == []


# =============================================================================
# Soft penalties
# =============================================================================

class TestDailyLimits:

    def test_load_excess(self):
        assert load_excess(5, 4) == 1
        assert load_excess(3, 4) == 0
        assert load_excess(9, None) == 0

    def test_load_excess_delta(self):
        assert load_excess_delta(3, 4) == 0
        assert load_excess_delta(4, 4) == 1
        assert load_excess_delta(7, None) == 0

    def test_teacher_load_penalty(self):
        assert teacher_load_penalty([0b111, 0b1, 0b11111], 3) == 2


class TestGaps:

    def test_day_gaps(self):
        assert day_gaps(0) == 0
        assert day_gaps(0b111) == 0
        assert day_gaps(0b10011) == 2
        assert day_gaps(0b1000001) == 5

    def test_gap_delta(self):
        assert gap_delta(0b001, 2) == 1
        assert gap_delta(0b101, 1) == -1
        assert gap_delta(0, 3) == 0

    def test_total_gaps(self):
        assert total_gaps([0b101, 0b1001, 0]) == 3


class TestDistribution:

    def test_same_day_pairs(self):
        assert same_day_pairs(0) == 0
        assert same_day_pairs(1) == 0
        assert same_day_pairs(3) == 3

    def test_spread_penalty(self):
        assert spread_penalty([1, 1, 1, 0, 0]) == 0
        assert spread_penalty([2, 1, 0, 0, 3]) == 4
