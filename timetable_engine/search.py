"""
Backtracking search with most-constrained-variable ordering and forward checking.

State machine:
    READY -> SEARCHING -> SOLVED | PARTIAL | TIMED_OUT

The search keeps an explicit stack of frames instead of recursing, so
depth is bounded only by the number of occurrences. Each frame holds:
- the occurrence being assigned
- its candidate values in trial order, each paired with a room, and a
  cursor into them
- the values its forward check pruned from other domains
- the value currently assigned (if any)
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Optional

from .constraints import ConstraintEngine, ConstraintWeights
from .constraints.no_overlap import Placement, has_bit
from .domains import Domains
from .model_builder import SchoolModel
from .output.schema import SolveState
from .runtime import CancelToken, ProgressTracker

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================

@dataclass
class SearchStats:
    """Effort spent by one search."""
    nodes: int = 0
    backtracks: int = 0
    elapsed_seconds: float = 0.0
    hit_node_budget: bool = False
    hit_time_limit: bool = False
    cancelled: bool = False
    exhausted: bool = False  # tree fully explored without placing everything
    skipped: int = 0  # root occurrences set aside after their subtree was exhausted


@dataclass
class SearchResult:
    """Best assignment found by one search."""
    state: SolveState
    placements: dict[int, Placement]
    penalty: int
    stuck: list[int]  # had candidates, but none survived the locked placements
    stats: SearchStats

    @property
    def placed(self) -> int:
        return len(self.placements)


@dataclass
class _Frame:
    occurrence: int
    values: list[tuple[int, Optional[int]]]  # (candidate index, room)
    cursor: int = 0
    pruned: list[tuple[int, int]] = field(default_factory=list)
    assigned: Optional[int] = None


# =============================================================================
# Search
# =============================================================================

class BacktrackingSearch:
    """
    One seeded backtracking run over a shared SchoolModel and Domains.

    Usage:
        search = BacktrackingSearch(model, domains, seed=42, node_budget=20_000)
        result = search.run()
    """

    PROGRESS_EVERY = 512

    def __init__(
        self,
        model: SchoolModel,
        domains: Domains,
        weights: ConstraintWeights | None = None,
        *,
        seed: int,
        node_budget: int,
        time_limit: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
        progress: Optional[ProgressTracker] = None,
        trial: int = 0,
    ):
        self.model = model
        self.domains = domains
        self.engine = ConstraintEngine(model, weights)
        self.rng = random.Random(seed)
        self.node_budget = node_budget
        self.time_limit = time_limit
        self.cancel = cancel
        self.progress = progress
        self.trial = trial

        self.state = SolveState.READY
        self.stats = SearchStats()

        self.alive = [bytearray(b"\x01") * len(values) for values in domains.candidates]
        self.live = [len(values) for values in domains.candidates]
        self.open: set[int] = {o for o, size in enumerate(self.live) if size}
        self.stuck: list[int] = []

        self._deadline: Optional[float] = None
        self._stopped = False
        self._best: dict[int, Placement] = {}
        self._best_placed = -1
        self._best_penalty = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(self) -> SearchResult:
        """Run the search until it completes or a budget runs out."""
        started = time.monotonic()
        if self.time_limit is not None:
            self._deadline = started + self.time_limit
        self.state = SolveState.SEARCHING

        self._place_locked()
        for o in sorted(self.open):
            if self.live[o] == 0:
                self.stuck.append(o)
        self.open.difference_update(self.stuck)
        self._record_best()

        self._search()

        self.stats.elapsed_seconds = time.monotonic() - started
        if self._best_placed == self.model.total_occurrences:
            self.state = SolveState.SOLVED
        elif self.stats.hit_time_limit:
            self.state = SolveState.TIMED_OUT
        else:
            self.state = SolveState.PARTIAL

        if self.progress is not None:
            self.progress.update(self._best_placed, self.stats.nodes, self.trial)

        logger.debug(
            "Search trial %d: %s, %d/%d placed, penalty %d, %d nodes, %d backtracks in %.2fs",
            self.trial, self.state.value, self._best_placed, self.model.total_occurrences,
            self._best_penalty, self.stats.nodes, self.stats.backtracks, self.stats.elapsed_seconds,
        )
        return SearchResult(
            state=self.state,
            placements=dict(self._best),
            penalty=self._best_penalty,
            stuck=list(self.stuck),
            stats=self.stats,
        )

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    def _search(self) -> None:
        """
        Depth-first search from a fresh root until every open occurrence is
        placed or a budget runs out.

        A root whose whole subtree fails has no value in any complete
        timetable. It is set aside and the search restarts without it, so
        the best partial still covers everything else that fits.
        """
        while True:
            root = self._open_frame()
            if root is None:
                return
            stack = [root]

            while stack:
                frame = stack[-1]
                if frame.assigned is not None:
                    self._undo(frame)
                    self.stats.backtracks += 1

                advanced = self._advance(frame)
                if self._stopped:
                    return

                if advanced:
                    self._record_best()
                    child = self._open_frame()
                    if child is None:
                        return
                    stack.append(child)
                else:
                    stack.pop()
                    if stack:
                        self.open.add(frame.occurrence)

            self.stats.exhausted = True
            self.stats.skipped += 1
            logger.debug("Search trial %d: no value of %s fits, continuing without it",
                         self.trial, self.model.describe(root.occurrence))

    def _open_frame(self) -> Optional[_Frame]:
        """Pick the most constrained open occurrence and order its live values."""
        occurrence = self._select()
        if occurrence is None:
            return None
        self.open.discard(occurrence)

        candidates = self.domains.candidates[occurrence]
        order = [ci for ci, alive in enumerate(self.alive[occurrence]) if alive]
        self.rng.shuffle(order)
        order.sort(key=lambda ci: self.engine.delta_place(occurrence, *candidates[ci]))
        values = [
            (ci, room)
            for ci in order
            for room in self._room_choices(occurrence, candidates[ci][1])
        ]
        return _Frame(occurrence=occurrence, values=values)

    def _room_choices(self, occurrence: int, period: int) -> list[Optional[int]]:
        """
        Rooms worth branching on for ``occurrence`` at ``period``.

        Rooms in the same class are interchangeable for every requirement,
        so only the lowest free room of each class is tried. Classes come
        least contended first.
        """
        if not self.model.rooms_tracked:
            return [None]
        room_mask = self.model.requirement_of(occurrence).room_mask
        free = room_mask & ~self.engine.occupancy.rooms_busy_at[period]
        choices = []
        for room_class in self.domains.room_classes:
            available = free & room_class
            if available:
                choices.append((available & -available).bit_length() - 1)
        return choices

    def _select(self) -> Optional[int]:
        """
        Most-constrained variable: smallest live domain, then the smallest
        share of its requirement still unplaced, then lowest index.
        """
        model = self.model
        placed = self.engine.requirement_placed
        best = None
        best_key = None
        for o in self.open:
            req = model.requirement_of(o)
            key = (
                self.live[o],
                (req.periods_per_week - placed[req.index]) / req.periods_per_week,
                o,
            )
            if best_key is None or key < best_key:
                best, best_key = o, key
        return best

    def _advance(self, frame: _Frame) -> bool:
        """Try the frame's remaining values; True once one survives forward checking."""
        occurrence = frame.occurrence
        candidates = self.domains.candidates[occurrence]
        alive = self.alive[occurrence]

        while frame.cursor < len(frame.values):
            if self._should_stop():
                self._stopped = True
                return False

            ci, room = frame.values[frame.cursor]
            frame.cursor += 1
            if not alive[ci]:
                continue
            teacher, period = candidates[ci]
            if not self.engine.can_place(occurrence, teacher, period):
                continue

            self.stats.nodes += 1
            if self.progress is not None and self.stats.nodes % self.PROGRESS_EVERY == 0:
                self.progress.update(self._best_placed, self.stats.nodes, self.trial)

            placement = self.engine.apply(occurrence, teacher, period, room)
            frame.assigned = ci
            if self._forward_check(occurrence, placement, frame.pruned):
                return True
            self._undo(frame)

        return False

    def _undo(self, frame: _Frame) -> None:
        self.engine.retract(frame.occurrence)
        for y, ci in reversed(frame.pruned):
            self.alive[y][ci] = 1
            self.live[y] += 1
        frame.pruned.clear()
        frame.assigned = None

    def _should_stop(self) -> bool:
        if self.stats.nodes >= self.node_budget:
            self.stats.hit_node_budget = True
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.stats.hit_time_limit = True
            return True
        if self.cancel is not None and self.cancel.cancelled:
            self.stats.cancelled = True
            return True
        return False

    # -------------------------------------------------------------------------
    # Forward checking
    # -------------------------------------------------------------------------

    def _forward_check(self, occurrence: int, placement: Placement, pruned: list[tuple[int, int]],
                       stop_on_wipeout: bool = True) -> bool:
        """
        Remove values made impossible by ``placement`` from open occurrences.

        Affected occurrences share the class, could be taught by the same
        teacher, or need a room from a set the placement just filled.

        Returns:
            False if some open occurrence was left without values
        """
        model = self.model
        domains = self.domains
        teacher, period, room = placement
        class_idx = model.occurrences[occurrence].class_idx
        wiped = False

        for y in model.class_occurrences[class_idx]:
            if y in self.open:
                self._prune(y, period, None, pruned)
                if self.live[y] == 0:
                    wiped = True
                    if stop_on_wipeout:
                        return False

        for y in model.teacher_occurrences[teacher]:
            if y in self.open:
                self._prune(y, period, teacher, pruned)
                if self.live[y] == 0:
                    wiped = True
                    if stop_on_wipeout:
                        return False

        if room is not None:
            busy = self.engine.occupancy.rooms_busy_at[period]
            for room_mask, group in domains.room_groups.items():
                if not has_bit(room_mask, room) or room_mask & ~busy:
                    continue
                for y in group:
                    if y in self.open:
                        self._prune(y, period, None, pruned)
                        if self.live[y] == 0:
                            wiped = True
                            if stop_on_wipeout:
                                return False

        return not wiped

    def _prune(self, y: int, period: int, teacher: Optional[int], pruned: list[tuple[int, int]]) -> None:
        """Kill y's live values at ``period`` (only those of ``teacher`` when given)."""
        alive = self.alive[y]
        candidates = self.domains.candidates[y]
        for ci in self.domains.by_period[y].get(period, ()):
            if alive[ci] and (teacher is None or candidates[ci][0] == teacher):
                alive[ci] = 0
                self.live[y] -= 1
                pruned.append((y, ci))

    # -------------------------------------------------------------------------
    # Setup and bookkeeping
    # -------------------------------------------------------------------------

    def _place_locked(self) -> None:
        """
        Apply locked placements first; their pruning is permanent.

        Locks that pin a room go before the rest so an unpinned lock never
        takes a room another lock is fixed to.
        """
        engine = self.engine
        locks = sorted(self.model.locked.items(), key=lambda item: (item[1].room is None, item[0]))
        for occurrence, pinned in locks:
            if occurrence not in self.open:
                continue
            self.open.discard(occurrence)
            teacher, period, room = pinned
            if (
                self.live[occurrence] == 0
                or not engine.can_place(occurrence, teacher, period)
                or (room is not None and not engine.occupancy.room_free(room, period))
            ):
                self.stuck.append(occurrence)
                continue
            placement = engine.apply(occurrence, teacher, period, room)
            self._forward_check(occurrence, placement, [], stop_on_wipeout=False)

    def _record_best(self) -> None:
        placed = self.engine.placed_count
        penalty = self.engine.penalty
        if placed > self._best_placed or (placed == self._best_placed and penalty < self._best_penalty):
            self._best = self.engine.snapshot()
            self._best_placed = placed
            self._best_penalty = penalty
