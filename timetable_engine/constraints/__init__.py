"""
Constraint engine for the timetabling solver.

This package holds the constraint logic split by concern (no-overlap,
availability, rooms, daily limits, gaps, distribution) and the
ConstraintEngine that combines them into incremental solver state.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..model_builder import SchoolModel

from .no_overlap import (
    Occupancy,
    Placement,
    has_bit,
)

from .availability import (
    periods_to_mask,
    schedulable_mask,
    teacher_available_mask,
    qualified_teachers,
    teaches_subject,
)

from .rooms import (
    RoomSuitability,
    evaluate_room,
    compatible_room_mask,
    pick_room,
    room_indices,
)

from .daily_limits import (
    load_excess,
    load_excess_delta,
    teacher_load_penalty,
)

from .gaps import (
    day_gaps,
    gap_delta,
    total_gaps,
)

from .distribution import (
    same_day_pairs,
    spread_penalty,
)


# =============================================================================
# Constraint Names
# =============================================================================

TEACHER_DOUBLE_BOOKED = "teacher_double_booked"
CLASS_DOUBLE_BOOKED = "class_double_booked"
ROOM_DOUBLE_BOOKED = "room_double_booked"
TEACHER_NOT_QUALIFIED = "teacher_not_qualified"
TEACHER_UNAVAILABLE = "teacher_unavailable"
PERIOD_NOT_SCHEDULABLE = "period_not_schedulable"
ROOM_INCOMPATIBLE = "room_incompatible"
REQUIREMENT_INCOMPLETE = "requirement_incomplete"

HARD_CONSTRAINTS = (
    TEACHER_DOUBLE_BOOKED,
    CLASS_DOUBLE_BOOKED,
    ROOM_DOUBLE_BOOKED,
    TEACHER_NOT_QUALIFIED,
    TEACHER_UNAVAILABLE,
    PERIOD_NOT_SCHEDULABLE,
    ROOM_INCOMPATIBLE,
    REQUIREMENT_INCOMPLETE,
)


# =============================================================================
# Weights and Scores
# =============================================================================

@dataclass
class ConstraintWeights:
    """Configurable penalty weights for soft constraints."""
    teacher_load: int = 3  # Per period above a teacher's preferred daily load
    teacher_gaps: int = 2  # Per idle slot in a teacher's day
    class_gaps: int = 2  # Per idle slot in a class's day
    subject_spread: int = 5  # Per same-day pair of a spread requirement

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class PenaltyBreakdown:
    """Raw soft-constraint counts of a (partial) timetable."""
    teacher_load: int = 0
    teacher_gaps: int = 0
    class_gaps: int = 0
    subject_spread: int = 0

    def total(self, weights: ConstraintWeights) -> int:
        return (
            weights.teacher_load * self.teacher_load
            + weights.teacher_gaps * self.teacher_gaps
            + weights.class_gaps * self.class_gaps
            + weights.subject_spread * self.subject_spread
        )


@dataclass
class Violation:
    """A broken hard constraint found by verification."""
    constraint: str
    detail: str
    occurrences: list[int] = field(default_factory=list)


# =============================================================================
# Constraint Engine
# =============================================================================

class ConstraintEngine:
    """
    Incremental timetable state with O(1) placement checks.

    Holds the occupancy bitsets, the current assignment of every occurrence
    and per-(entity, day) slot masks from which the soft penalty is kept
    up to date on every apply/retract.

    Usage:
        engine = ConstraintEngine(model, weights)
        if engine.can_place(occ, teacher, period):
            engine.apply(occ, teacher, period)
        ...
        engine.retract(occ)
    """

    def __init__(self, model: SchoolModel, weights: ConstraintWeights | None = None):
        self.model = model
        self.weights = weights or ConstraintWeights()

        num_days = model.num_days
        self.occupancy = Occupancy(
            len(model.teacher_ids), len(model.class_ids), len(model.room_ids), model.num_periods
        )
        self.assignment: list[Optional[Placement]] = [None] * model.total_occurrences

        self.teacher_day = [[0] * num_days for _ in model.teacher_ids]
        self.class_day = [[0] * num_days for _ in model.class_ids]
        self.requirement_day = [[0] * num_days for _ in model.requirements]
        self.requirement_placed = [0] * len(model.requirements)

        self.placed_count = 0
        self.penalty = 0

    # -------------------------------------------------------------------------
    # Hard checks
    # -------------------------------------------------------------------------

    def can_place(self, occurrence: int, teacher: int, period: int) -> bool:
        """Fast dynamic check: teacher, class and (when tracked) a compatible room are free."""
        occ = self.model.occurrences[occurrence]
        occupancy = self.occupancy
        if not occupancy.teacher_free(teacher, period) or not occupancy.class_free(occ.class_idx, period):
            return False
        if self.model.rooms_tracked:
            room_mask = self.model.requirements[occ.requirement].room_mask
            return occupancy.free_rooms(room_mask, period) != 0
        return True

    def check(self, occurrence: int, teacher: int, period: int, room: Optional[int] = None) -> list[str]:
        """
        Names of every hard constraint the placement would break.

        The occurrence's own current placement (if any) never counts as a
        conflict. With rooms tracked and ``room`` None, some compatible room
        must be free.
        """
        model = self.model
        occ = model.occurrences[occurrence]
        req = model.requirements[occ.requirement]
        occupancy = self.occupancy
        violations = []

        if not model.is_schedulable(period):
            violations.append(PERIOD_NOT_SCHEDULABLE)
        if teacher not in req.qualified_teachers:
            violations.append(TEACHER_NOT_QUALIFIED)
        if has_bit(model.teacher_unavailable[teacher], period):
            violations.append(TEACHER_UNAVAILABLE)
        if occupancy.teacher_owner.get((teacher, period), occurrence) != occurrence:
            violations.append(TEACHER_DOUBLE_BOOKED)
        if occupancy.class_owner.get((occ.class_idx, period), occurrence) != occurrence:
            violations.append(CLASS_DOUBLE_BOOKED)

        if not model.rooms_tracked:
            if room is not None:
                violations.append(ROOM_INCOMPATIBLE)
        elif room is not None:
            if not has_bit(req.room_mask, room):
                violations.append(ROOM_INCOMPATIBLE)
            if occupancy.room_owner.get((room, period), occurrence) != occurrence:
                violations.append(ROOM_DOUBLE_BOOKED)
        elif req.room_mask == 0:
            violations.append(ROOM_INCOMPATIBLE)
        elif self._room_for(occurrence, period) is None:
            violations.append(ROOM_DOUBLE_BOOKED)

        return violations

    def _room_for(self, occurrence: int, period: int) -> Optional[int]:
        req = self.model.requirement_of(occurrence)
        busy = self.occupancy.rooms_busy_at[period]
        current = self.assignment[occurrence]
        if current is not None and current.period == period and current.room is not None:
            busy &= ~(1 << current.room)
        return pick_room(req.room_mask, busy)

    def blockers(self, occurrence: int, teacher: int, period: int) -> set[int]:
        """
        Occurrences that must move for ``occurrence`` to take (teacher, period).

        When every compatible room is taken, the holder of the lowest
        compatible room is included.
        """
        occ = self.model.occurrences[occurrence]
        found = self.occupancy.blockers(occ.class_idx, Placement(teacher, period))
        if self.model.rooms_tracked:
            room_mask = self.model.requirements[occ.requirement].room_mask
            if room_mask and self.occupancy.free_rooms(room_mask, period) == 0:
                room = (room_mask & -room_mask).bit_length() - 1
                found.add(self.occupancy.room_owner[(room, period)])
        found.discard(occurrence)
        return found

    # -------------------------------------------------------------------------
    # Soft penalty
    # -------------------------------------------------------------------------

    def delta_place(self, occurrence: int, teacher: int, period: int) -> int:
        """Change of the weighted soft penalty if the occurrence were placed. O(1)."""
        model = self.model
        occ = model.occurrences[occurrence]
        weights = self.weights
        day, slot = divmod(period, model.slots_per_day)

        teacher_mask = self.teacher_day[teacher][day]
        delta = weights.teacher_load * load_excess_delta(
            teacher_mask.bit_count(), model.teacher_max_per_day[teacher]
        )
        delta += weights.teacher_gaps * gap_delta(teacher_mask, slot)
        delta += weights.class_gaps * gap_delta(self.class_day[occ.class_idx][day], slot)
        if model.requirements[occ.requirement].spread:
            delta += weights.subject_spread * self.requirement_day[occ.requirement][day]
        return delta

    def breakdown(self) -> PenaltyBreakdown:
        """Recompute the raw soft counts from the day masks."""
        model = self.model
        result = PenaltyBreakdown()
        for t, days in enumerate(self.teacher_day):
            result.teacher_load += teacher_load_penalty(days, model.teacher_max_per_day[t])
            result.teacher_gaps += total_gaps(days)
        for days in self.class_day:
            result.class_gaps += total_gaps(days)
        for req, days in zip(model.requirements, self.requirement_day):
            if req.spread:
                result.subject_spread += spread_penalty(days)
        return result

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def apply(self, occurrence: int, teacher: int, period: int, room: Optional[int] = None) -> Placement:
        """
        Place an occurrence. No checks; callers test ``can_place`` or ``check`` first.

        With rooms tracked and no room given, the lowest free compatible room
        is taken.

        Returns:
            The placement actually made
        """
        model = self.model
        occ = model.occurrences[occurrence]
        if model.rooms_tracked and room is None:
            room = pick_room(model.requirements[occ.requirement].room_mask, self.occupancy.rooms_busy_at[period])

        self.penalty += self.delta_place(occurrence, teacher, period)

        placement = Placement(teacher, period, room)
        self.occupancy.mark(occurrence, occ.class_idx, placement)
        self.assignment[occurrence] = placement

        day, slot = divmod(period, model.slots_per_day)
        bit = 1 << slot
        self.teacher_day[teacher][day] |= bit
        self.class_day[occ.class_idx][day] |= bit
        self.requirement_day[occ.requirement][day] += 1
        self.requirement_placed[occ.requirement] += 1
        self.placed_count += 1
        return placement

    def retract(self, occurrence: int) -> Placement:
        """Remove an occurrence's placement and return it."""
        model = self.model
        occ = model.occurrences[occurrence]
        placement = self.assignment[occurrence]
        if placement is None:
            raise ValueError(f"Occurrence {model.describe(occurrence)} is not placed")

        self.occupancy.clear(occ.class_idx, placement)
        self.assignment[occurrence] = None

        day, slot = divmod(placement.period, model.slots_per_day)
        bit = ~(1 << slot)
        self.teacher_day[placement.teacher][day] &= bit
        self.class_day[occ.class_idx][day] &= bit
        self.requirement_day[occ.requirement][day] -= 1
        self.requirement_placed[occ.requirement] -= 1
        self.placed_count -= 1

        self.penalty -= self.delta_place(occurrence, placement.teacher, placement.period)
        return placement

    def load(self, placements: dict[int, Placement]) -> None:
        """Apply a batch of known-good placements (e.g. a snapshot)."""
        for occurrence, placement in placements.items():
            self.apply(occurrence, *placement)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def is_placed(self, occurrence: int) -> bool:
        return self.assignment[occurrence] is not None

    def snapshot(self) -> dict[int, Placement]:
        return {o: p for o, p in enumerate(self.assignment) if p is not None}

    def unplaced(self) -> list[int]:
        return [o for o, p in enumerate(self.assignment) if p is None]

    @property
    def is_complete(self) -> bool:
        return self.placed_count == self.model.total_occurrences

    def verify(self) -> list[Violation]:
        """
        Check every hard constraint from scratch.

        Independent of the incremental bitsets, so it also catches
        placements that were applied without checking. A locked occurrence
        away from its pinned period is reported as period_not_schedulable,
        one outside its pinned room as room_incompatible.
        """
        model = self.model
        violations: list[Violation] = []
        teacher_seen: dict[tuple[int, int], int] = {}
        class_seen: dict[tuple[int, int], int] = {}
        room_seen: dict[tuple[int, int], int] = {}
        placed_per_requirement = [0] * len(model.requirements)

        for o, placement in enumerate(self.assignment):
            if placement is None:
                continue
            occ = model.occurrences[o]
            req = model.requirements[occ.requirement]
            teacher, period, room = placement
            label = f"{model.describe(o)} at {model.period_label(period)}"
            placed_per_requirement[req.index] += 1

            if not model.is_schedulable(period):
                violations.append(Violation(PERIOD_NOT_SCHEDULABLE, label, [o]))
            if teacher not in req.qualified_teachers:
                violations.append(Violation(TEACHER_NOT_QUALIFIED, f"{label}: {model.teacher_ids[teacher]}", [o]))
            if has_bit(model.teacher_unavailable[teacher], period):
                violations.append(Violation(TEACHER_UNAVAILABLE, f"{label}: {model.teacher_ids[teacher]}", [o]))

            pinned = model.locked.get(o)
            if pinned is not None:
                if (teacher, period) != (pinned.teacher, pinned.period):
                    violations.append(Violation(
                        PERIOD_NOT_SCHEDULABLE, f"{label}: locked to {model.period_label(pinned.period)}", [o]
                    ))
                elif pinned.room is not None and room != pinned.room:
                    violations.append(Violation(
                        ROOM_INCOMPATIBLE, f"{label}: locked to room {model.room_ids[pinned.room]}", [o]
                    ))

            key = (teacher, period)
            if key in teacher_seen:
                violations.append(Violation(TEACHER_DOUBLE_BOOKED, label, [teacher_seen[key], o]))
            teacher_seen[key] = o

            key = (occ.class_idx, period)
            if key in class_seen:
                violations.append(Violation(CLASS_DOUBLE_BOOKED, label, [class_seen[key], o]))
            class_seen[key] = o

            if model.rooms_tracked:
                if room is None or not has_bit(req.room_mask, room):
                    violations.append(Violation(ROOM_INCOMPATIBLE, label, [o]))
                if room is not None:
                    key = (room, period)
                    if key in room_seen:
                        violations.append(Violation(ROOM_DOUBLE_BOOKED, label, [room_seen[key], o]))
                    room_seen[key] = o
            elif room is not None:
                violations.append(Violation(ROOM_INCOMPATIBLE, label, [o]))

        for req, placed in zip(model.requirements, placed_per_requirement):
            if placed != req.periods_per_week:
                violations.append(Violation(
                    REQUIREMENT_INCOMPLETE,
                    f"{req.id}: {placed} of {req.periods_per_week} periods placed",
                ))

        return violations


__all__ = [
    # No-overlap
    "Occupancy",
    "Placement",
    "has_bit",
    # Availability
    "periods_to_mask",
    "schedulable_mask",
    "teacher_available_mask",
    "qualified_teachers",
    "teaches_subject",
    # Rooms
    "RoomSuitability",
    "evaluate_room",
    "compatible_room_mask",
    "pick_room",
    "room_indices",
    # Daily limits
    "load_excess",
    "load_excess_delta",
    "teacher_load_penalty",
    # Gaps
    "day_gaps",
    "gap_delta",
    "total_gaps",
    # Distribution
    "same_day_pairs",
    "spread_penalty",
    # Engine
    "HARD_CONSTRAINTS",
    "TEACHER_DOUBLE_BOOKED",
    "CLASS_DOUBLE_BOOKED",
    "ROOM_DOUBLE_BOOKED",
    "TEACHER_NOT_QUALIFIED",
    "TEACHER_UNAVAILABLE",
    "PERIOD_NOT_SCHEDULABLE",
    "ROOM_INCOMPATIBLE",
    "REQUIREMENT_INCOMPLETE",
    "ConstraintWeights",
    "PenaltyBreakdown",
    "Violation",
    "ConstraintEngine",
]
