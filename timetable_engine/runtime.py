"""Cancellation and progress reporting shared by the solver and the job runner."""

from __future__ import annotations

import threading
import time
from typing import Optional

from .output.schema import GenerationStatus, SolveState


class CancelToken:
    """
    Cooperative cancellation flag with an optional absolute deadline.

    The solver polls it between backtracking nodes and annealing
    iterations; nothing is interrupted mid-step.
    """

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self.deadline = deadline  # time.monotonic() value

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline


class ProgressTracker:
    """Thread-safe progress record that a worker updates and callers poll."""

    def __init__(self, school_id: str, run_id: Optional[str] = None):
        self._lock = threading.Lock()
        self._started = time.monotonic()
        self._status = GenerationStatus(schoolId=school_id, runId=run_id)
        self._trial_nodes: dict[int, int] = {}

    def start(self, run_id: str, total: int) -> None:
        with self._lock:
            self._started = time.monotonic()
            self._trial_nodes = {}
            self._status = self._status.model_copy(update={
                "run_id": run_id,
                "state": SolveState.SEARCHING,
                "running": True,
                "total": total,
                "placed": 0,
                "nodes": 0,
            })

    def update(self, placed: int, nodes: Optional[int] = None, trial: int = 0) -> None:
        """Record search progress of one trial; ``placed`` only ever grows within a run."""
        with self._lock:
            if nodes is not None:
                self._trial_nodes[trial] = nodes
            self._status = self._status.model_copy(update={
                "placed": max(placed, self._status.placed),
                "nodes": sum(self._trial_nodes.values()),
            })

    def finish(self, state: SolveState, placed: int, error: Optional[str] = None) -> None:
        with self._lock:
            self._status = self._status.model_copy(update={
                "state": state,
                "running": False,
                "placed": placed,
                "error": error,
                "elapsed_seconds": time.monotonic() - self._started,
            })

    def snapshot(self) -> GenerationStatus:
        with self._lock:
            status = self._status
            if status.running:
                status = status.model_copy(update={"elapsed_seconds": time.monotonic() - self._started})
            return status
