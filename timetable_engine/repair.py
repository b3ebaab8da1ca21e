"""
Simulated-annealing repair of a partial timetable.

Starts from the best partial assignment the backtracking search found and
tries to place what is still missing. Two neighborhoods:
- place: put an unplaced occurrence on a random candidate value, evicting
  the unlocked occurrences that block it and greedily re-placing them
- shift: move a placed occurrence to another free candidate value

Energy = unplaced_weight * unplaced + soft penalty. Worsening moves are
accepted with probability exp(-delta / T); T decays geometrically from
the initial to the final temperature over the iteration budget.

The returned configuration is the best one seen, and the best is only
ever replaced by a strictly better one, so repair never loses placements.
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Optional

from .constraints import ConstraintEngine, ConstraintWeights
from .constraints.no_overlap import Placement
from .domains import Domains
from .model_builder import SchoolModel
from .runtime import CancelToken, ProgressTracker

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================

@dataclass
class RepairStats:
    """Effort spent by one repair pass."""
    iterations: int = 0
    attempted: int = 0
    accepted: int = 0
    improvements: int = 0
    elapsed_seconds: float = 0.0
    hit_time_limit: bool = False
    cancelled: bool = False


@dataclass
class RepairResult:
    placements: dict[int, Placement]
    penalty: int
    placed_before: int
    stats: RepairStats

    @property
    def placed(self) -> int:
        return len(self.placements)


class _IndexedSet:
    """Set with O(1) add, discard and uniform random choice."""

    def __init__(self, items=()):
        self.items: list[int] = []
        self.positions: dict[int, int] = {}
        for item in items:
            self.add(item)

    def add(self, item: int) -> None:
        if item not in self.positions:
            self.positions[item] = len(self.items)
            self.items.append(item)

    def discard(self, item: int) -> None:
        index = self.positions.pop(item, None)
        if index is None:
            return
        last = self.items.pop()
        if index < len(self.items):
            self.items[index] = last
            self.positions[last] = index

    def choice(self, rng: random.Random) -> int:
        return self.items[rng.randrange(len(self.items))]

    def __contains__(self, item: int) -> bool:
        return item in self.positions

    def __len__(self) -> int:
        return len(self.items)


# =============================================================================
# Annealing
# =============================================================================

class AnnealingRepair:
    """
    One seeded repair pass.

    Usage:
        repair = AnnealingRepair(model, domains, seed=42, iterations=20_000)
        result = repair.run(search_result.placements)
    """

    PLACE_PROBABILITY = 0.7
    GREEDY_SAMPLE = 8  # feasible values compared when re-placing an evicted occurrence

    def __init__(
        self,
        model: SchoolModel,
        domains: Domains,
        weights: ConstraintWeights | None = None,
        *,
        seed: int,
        iterations: int,
        time_limit: Optional[float] = None,
        initial_temperature: float = 4.0,
        final_temperature: float = 0.05,
        unplaced_weight: int = 10,
        cancel: Optional[CancelToken] = None,
        progress: Optional[ProgressTracker] = None,
        trial: int = 0,
    ):
        self.model = model
        self.domains = domains
        self.weights = weights
        self.rng = random.Random(seed)
        self.iterations = iterations
        self.time_limit = time_limit
        self.initial_temperature = initial_temperature
        self.final_temperature = min(final_temperature, initial_temperature)
        self.unplaced_weight = unplaced_weight
        self.cancel = cancel
        self.progress = progress
        self.trial = trial

        self.locked = set(model.locked)
        self.stats = RepairStats()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(self, placements: dict[int, Placement]) -> RepairResult:
        """Repair ``placements`` (left untouched) and return the best configuration seen."""
        started = time.monotonic()
        deadline = started + self.time_limit if self.time_limit is not None else None

        self.engine = engine = ConstraintEngine(self.model, self.weights)
        engine.load(placements)

        candidates = self.domains.candidates
        self.unplaced = _IndexedSet(o for o in engine.unplaced() if candidates[o])
        self.movable = _IndexedSet(o for o in placements if o not in self.locked)

        best = engine.snapshot()
        best_placed, best_penalty = engine.placed_count, engine.penalty
        placed_before = best_placed

        for iteration in range(self.iterations):
            if not self.unplaced:
                break
            if deadline is not None and time.monotonic() >= deadline:
                self.stats.hit_time_limit = True
                break
            if self.cancel is not None and self.cancel.cancelled:
                self.stats.cancelled = True
                break
            self.stats.iterations = iteration + 1

            temperature = self._temperature(iteration)
            energy_before = self._energy()
            journal: list[tuple[int, Optional[Placement]]] = []

            if not self.movable or self.rng.random() < self.PLACE_PROBABILITY:
                moved = self._place_move(journal)
            else:
                moved = self._shift_move(journal)
            if not moved:
                self._revert(journal)
                continue

            self.stats.attempted += 1
            delta = self._energy() - energy_before
            if delta > 0 and self.rng.random() >= math.exp(-delta / temperature):
                self._revert(journal)
                continue
            self.stats.accepted += 1

            if engine.placed_count > best_placed or (
                engine.placed_count == best_placed and engine.penalty < best_penalty
            ):
                best = engine.snapshot()
                best_placed, best_penalty = engine.placed_count, engine.penalty
                self.stats.improvements += 1
                if self.progress is not None:
                    self.progress.update(best_placed, trial=self.trial)

        self.stats.elapsed_seconds = time.monotonic() - started
        logger.debug(
            "Repair trial %d: %d -> %d placed, penalty %d, %d iterations (%d accepted) in %.2fs",
            self.trial, placed_before, best_placed, best_penalty,
            self.stats.iterations, self.stats.accepted, self.stats.elapsed_seconds,
        )
        return RepairResult(
            placements=best,
            penalty=best_penalty,
            placed_before=placed_before,
            stats=self.stats,
        )

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def _place_move(self, journal: list) -> bool:
        engine = self.engine
        occurrence = self.unplaced.choice(self.rng)
        teacher, period = self.rng.choice(self.domains.candidates[occurrence])
        pinned = self.model.locked.get(occurrence)
        room = pinned.room if pinned is not None else None

        if room is None:
            blockers = engine.blockers(occurrence, teacher, period)
        else:
            class_idx = self.model.occurrences[occurrence].class_idx
            blockers = engine.occupancy.blockers(class_idx, Placement(teacher, period, room))
        if blockers & self.locked:
            return False
        evicted = sorted(blockers)
        for other in evicted:
            self._retract(other, journal)
        if not engine.can_place(occurrence, teacher, period):
            return False
        if room is not None and not engine.occupancy.room_free(room, period):
            return False
        self._apply(occurrence, teacher, period, journal, room=room)

        for other in evicted:
            self._greedy_place(other, journal)
        return True

    def _shift_move(self, journal: list) -> bool:
        engine = self.engine
        occurrence = self.movable.choice(self.rng)
        teacher, period = self.rng.choice(self.domains.candidates[occurrence])
        current = engine.assignment[occurrence]
        if current.teacher == teacher and current.period == period:
            return False

        self._retract(occurrence, journal)
        if not engine.can_place(occurrence, teacher, period):
            return False
        self._apply(occurrence, teacher, period, journal)
        return True

    def _greedy_place(self, occurrence: int, journal: list) -> None:
        """Put an evicted occurrence on the cheapest of a few free values, if any."""
        engine = self.engine
        candidates = self.domains.candidates[occurrence]
        start = self.rng.randrange(len(candidates))
        best_value = None
        best_delta = None
        found = 0
        for k in range(len(candidates)):
            teacher, period = candidates[(start + k) % len(candidates)]
            if not engine.can_place(occurrence, teacher, period):
                continue
            delta = engine.delta_place(occurrence, teacher, period)
            if best_delta is None or delta < best_delta:
                best_value, best_delta = (teacher, period), delta
            found += 1
            if found >= self.GREEDY_SAMPLE:
                break
        if best_value is not None:
            self._apply(occurrence, *best_value, journal)

    # -------------------------------------------------------------------------
    # Journal
    # -------------------------------------------------------------------------

    def _apply(self, occurrence: int, teacher: int, period: int, journal: list,
               room: Optional[int] = None) -> None:
        self.engine.apply(occurrence, teacher, period, room)
        journal.append((occurrence, None))
        self.unplaced.discard(occurrence)
        self.movable.add(occurrence)

    def _retract(self, occurrence: int, journal: list) -> None:
        placement = self.engine.retract(occurrence)
        journal.append((occurrence, placement))
        self.movable.discard(occurrence)
        self.unplaced.add(occurrence)

    def _revert(self, journal: list) -> None:
        """Undo a move: retract what it applied, re-apply what it retracted."""
        for occurrence, placement in reversed(journal):
            if placement is None:
                self.engine.retract(occurrence)
                self.movable.discard(occurrence)
                self.unplaced.add(occurrence)
            else:
                self.engine.apply(occurrence, *placement)
                self.unplaced.discard(occurrence)
                self.movable.add(occurrence)
        journal.clear()

    # -------------------------------------------------------------------------
    # Energy and schedule
    # -------------------------------------------------------------------------

    def _energy(self) -> int:
        unplaced = self.model.total_occurrences - self.engine.placed_count
        return self.unplaced_weight * unplaced + self.engine.penalty

    def _temperature(self, iteration: int) -> float:
        progress = iteration / max(1, self.iterations)
        ratio = self.final_temperature / self.initial_temperature
        return self.initial_temperature * ratio ** progress
