"""
Timetable generation entry point.

Pipeline for one request:
    build model -> candidate domains -> N seeded trials (search, then repair)
    -> pick the best trial -> assemble the GenerationResult

Trials share the read-only SchoolModel and Domains; each owns its own
ConstraintEngine, so they run side by side on a thread pool.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .config import EngineSettings, get_settings
from .conflicts import build_conflict_report
from .constraints import REQUIREMENT_INCOMPLETE, ConstraintEngine, ConstraintWeights
from .constraints.no_overlap import Placement
from .data.models import GenerationRequest
from .domains import Domains, generate_domains
from .errors import GenerationTimeoutError, PartialSolutionWarning, TimetableEngineError
from .model_builder import SchoolModel, build_school_model
from .output.schema import (
    ClassCoverage,
    Diagnostic,
    GenerationResult,
    RunStatistics,
    ScoreBreakdown,
    SolveState,
    to_grid,
)
from .output.suggestions import generate_suggestions
from .repair import AnnealingRepair, RepairStats
from .runtime import CancelToken, ProgressTracker
from .search import BacktrackingSearch, SearchStats

logger = logging.getLogger(__name__)


# =============================================================================
# Budgets and Trial Outcomes
# =============================================================================

@dataclass
class RunBudget:
    """Effective limits of one run (settings overridden by the request)."""
    node_budget: int
    time_limit: float
    repair_time_limit: float
    repair_iterations: int
    trials: int


@dataclass
class TrialOutcome:
    """Result of one seeded search + repair trial."""
    index: int
    seed: int
    state: SolveState
    placements: dict[int, Placement]
    penalty: int
    search: SearchStats
    repair: Optional[RepairStats] = None

    @property
    def placed(self) -> int:
        return len(self.placements)

    @property
    def hit_time_limit(self) -> bool:
        return self.search.hit_time_limit or (self.repair is not None and self.repair.hit_time_limit)

    @property
    def cancelled(self) -> bool:
        return self.search.cancelled or (self.repair is not None and self.repair.cancelled)

    def rank(self) -> tuple[bool, int, int, int]:
        """Sort key: solved first, then most placed, then lowest penalty, then trial index."""
        return (self.state != SolveState.SOLVED, -self.placed, self.penalty, self.index)


def trial_seeds(seed: int, trials: int) -> list[int]:
    """Seeds for each trial; trial 0 uses the run seed itself."""
    rng = random.Random(seed)
    return [seed] + [rng.randrange(2**32) for _ in range(trials - 1)]


# =============================================================================
# Generator
# =============================================================================

class TimetableGenerator:
    """
    Generates timetables for GenerationRequests.

    Usage:
        generator = TimetableGenerator()
        result = generator.generate(request)
        if result.is_solved:
            ...
    """

    def __init__(self, settings: EngineSettings | None = None, weights: ConstraintWeights | None = None):
        self.settings = settings or get_settings()
        self.weights = weights or self.settings.weights()

    def generate(
        self,
        request: Union[GenerationRequest, Mapping[str, Any]],
        *,
        cancel: Optional[CancelToken] = None,
        progress: Optional[ProgressTracker] = None,
        run_id: Optional[str] = None,
    ) -> GenerationResult:
        """
        Run one generation.

        Infeasibility is reported through the result's status, diagnostics
        and conflict report; it is never raised.

        Raises:
            InvalidInputError: if the request is malformed or cannot be scheduled as given
        """
        started = time.monotonic()
        model = build_school_model(request)
        request = model.request
        domains = generate_domains(model)
        run_id = run_id or uuid.uuid4().hex

        seed = request.seed
        if seed is None:
            seed = random.SystemRandom().randrange(2**32)
            logger.info("Run %s: no seed given, drew seed %d", run_id, seed)

        budget = self.budget_for(model, request)
        logger.info(
            "Run %s for school %s: seed %d, %d occurrences, %d teachers, %d classes, "
            "node budget %d, %d trial(s)",
            run_id, request.school_id, seed, model.total_occurrences, len(model.teacher_ids),
            len(model.class_ids), budget.node_budget, budget.trials,
        )
        if progress is not None:
            progress.start(run_id, model.total_occurrences)

        outcomes = self._run_trials(model, domains, seed, budget, cancel, progress)
        best = min(outcomes, key=TrialOutcome.rank)
        for outcome in outcomes:
            logger.info(
                "Run %s trial %d (seed %d): %s, %d/%d placed, penalty %d",
                run_id, outcome.index, outcome.seed, outcome.state.value,
                outcome.placed, model.total_occurrences, outcome.penalty,
            )

        result = self._assemble(model, domains, run_id, seed, budget, outcomes, best, started)
        if progress is not None:
            progress.finish(result.status, result.placed)
        logger.info(
            "Run %s finished: %s, %d/%d placed, score %d in %.2fs",
            run_id, result.status.value, result.placed, result.total_occurrences,
            result.score.total, result.statistics.elapsed_seconds,
        )
        return result

    def budget_for(self, model: SchoolModel, request: GenerationRequest) -> RunBudget:
        settings = self.settings
        overrides = request.budget
        return RunBudget(
            node_budget=overrides.node_budget or settings.node_budget_for(model.total_occurrences),
            time_limit=overrides.time_limit_seconds or settings.time_limit_seconds,
            repair_time_limit=(
                overrides.repair_time_limit_seconds
                if overrides.repair_time_limit_seconds is not None
                else settings.repair_time_limit_seconds
            ),
            repair_iterations=(
                overrides.repair_iterations
                if overrides.repair_iterations is not None
                else settings.repair_iterations
            ),
            trials=overrides.parallel_trials or settings.parallel_trials,
        )

    # -------------------------------------------------------------------------
    # Trials
    # -------------------------------------------------------------------------

    def _run_trials(
        self,
        model: SchoolModel,
        domains: Domains,
        seed: int,
        budget: RunBudget,
        cancel: Optional[CancelToken],
        progress: Optional[ProgressTracker],
    ) -> list[TrialOutcome]:
        seeds = trial_seeds(seed, budget.trials)
        if budget.trials == 1:
            return [self._run_trial(model, domains, 0, seeds[0], budget, cancel, progress)]

        with ThreadPoolExecutor(max_workers=budget.trials, thread_name_prefix="timetable-trial") as pool:
            futures = [
                pool.submit(self._run_trial, model, domains, index, trial_seed, budget, cancel, progress)
                for index, trial_seed in enumerate(seeds)
            ]
            return [future.result() for future in futures]

    def _run_trial(
        self,
        model: SchoolModel,
        domains: Domains,
        index: int,
        seed: int,
        budget: RunBudget,
        cancel: Optional[CancelToken],
        progress: Optional[ProgressTracker],
    ) -> TrialOutcome:
        search = BacktrackingSearch(
            model, domains, self.weights,
            seed=seed,
            node_budget=budget.node_budget,
            time_limit=budget.time_limit,
            cancel=cancel,
            progress=progress,
            trial=index,
        )
        found = search.run()
        outcome = TrialOutcome(
            index=index,
            seed=seed,
            state=found.state,
            placements=found.placements,
            penalty=found.penalty,
            search=found.stats,
        )
        if found.state == SolveState.SOLVED or found.stats.cancelled:
            return outcome
        if budget.repair_iterations == 0 or budget.repair_time_limit == 0:
            return outcome

        repair = AnnealingRepair(
            model, domains, self.weights,
            seed=random.Random(seed).randrange(2**32),
            iterations=budget.repair_iterations,
            time_limit=budget.repair_time_limit,
            initial_temperature=self.settings.initial_temperature,
            final_temperature=self.settings.final_temperature,
            unplaced_weight=self.settings.unplaced_weight,
            cancel=cancel,
            progress=progress,
            trial=index,
        )
        repaired = repair.run(found.placements)
        outcome.placements = repaired.placements
        outcome.penalty = repaired.penalty
        outcome.repair = repaired.stats

        if outcome.placed == model.total_occurrences:
            outcome.state = SolveState.SOLVED
        elif outcome.hit_time_limit:
            outcome.state = SolveState.TIMED_OUT
        else:
            outcome.state = SolveState.PARTIAL
        return outcome

    # -------------------------------------------------------------------------
    # Result assembly
    # -------------------------------------------------------------------------

    def _assemble(
        self,
        model: SchoolModel,
        domains: Domains,
        run_id: str,
        seed: int,
        budget: RunBudget,
        outcomes: list[TrialOutcome],
        best: TrialOutcome,
        started: float,
    ) -> GenerationResult:
        request = model.request
        engine = ConstraintEngine(model, self.weights)
        engine.load(best.placements)

        broken = [v for v in engine.verify() if v.constraint != REQUIREMENT_INCOMPLETE]
        if broken:
            raise TimetableEngineError(
                f"Solver produced an invalid assignment: {broken[0].constraint} ({broken[0].detail})"
            )

        breakdown = engine.breakdown()
        grid = to_grid(model, best.placements)
        status = best.state
        cancelled = any(o.cancelled for o in outcomes) and status != SolveState.SOLVED

        diagnostics = [Diagnostic.from_error(error) for error in domains.unsatisfiable]
        conflicts = None
        if status != SolveState.SOLVED:
            missing = model.total_occurrences - best.placed
            if status == SolveState.TIMED_OUT:
                diagnostics.append(Diagnostic.from_error(GenerationTimeoutError(
                    f"Time limit reached with {missing} occurrence(s) unplaced"
                )))
            else:
                detail = "cancelled" if cancelled else "search budget exhausted"
                diagnostics.append(Diagnostic(
                    kind=PartialSolutionWarning.__name__,
                    message=f"{missing} occurrence(s) unplaced ({detail})",
                ))
            conflicts = build_conflict_report(model, domains, best.placements)

        required = [0] * len(model.class_ids)
        placed = [0] * len(model.class_ids)
        for occ in model.occurrences:
            required[occ.class_idx] += 1
            if occ.index in best.placements:
                placed[occ.class_idx] += 1

        return GenerationResult(
            runId=run_id,
            schoolId=request.school_id,
            term=request.term,
            status=status,
            seed=seed,
            cancelled=cancelled,
            placed=best.placed,
            totalOccurrences=model.total_occurrences,
            timetable=grid,
            score=ScoreBreakdown(
                total=breakdown.total(self.weights),
                teacherLoad=breakdown.teacher_load,
                teacherGaps=breakdown.teacher_gaps,
                classGaps=breakdown.class_gaps,
                subjectSpread=breakdown.subject_spread,
                weights=self.weights.as_dict(),
            ),
            coverage=[
                ClassCoverage(classId=class_id, placed=placed[c], required=required[c])
                for c, class_id in enumerate(model.class_ids)
            ],
            statistics=RunStatistics(
                trials=len(outcomes),
                bestTrial=best.index,
                nodes=sum(o.search.nodes for o in outcomes),
                nodeBudget=budget.node_budget,
                repairIterations=sum(o.repair.iterations for o in outcomes if o.repair is not None),
                searchSeconds=max(o.search.elapsed_seconds for o in outcomes),
                repairSeconds=max((o.repair.elapsed_seconds for o in outcomes if o.repair is not None), default=0.0),
                elapsedSeconds=time.monotonic() - started,
                hitTimeLimit=any(o.hit_time_limit for o in outcomes),
            ),
            diagnostics=diagnostics,
            conflicts=conflicts,
            suggestions=generate_suggestions(request, grid),
            request=request,
        )


def generate_timetable(
    request: Union[GenerationRequest, Mapping[str, Any]],
    settings: EngineSettings | None = None,
    **kwargs: Any,
) -> GenerationResult:
    """One-call convenience wrapper around TimetableGenerator."""
    return TimetableGenerator(settings).generate(request, **kwargs)
