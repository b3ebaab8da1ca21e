"""
Background generation jobs.

GenerationService runs each generation on its own worker thread, guarded
by a per-school lease. Callers poll the job for a GenerationStatus, may
cancel it, and collect the GenerationResult when it finishes. Solved
results are committed to the timetable store once, after the run.

While a run is in progress a companion thread renews its lease every
third of the lease TTL, so long runs keep the school locked. A run whose
lease was taken over is cancelled.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Mapping, Optional, Union

from .config import EngineSettings, get_settings
from .data.loader import parse_request
from .data.models import GenerationRequest
from .engine import TimetableGenerator
from .errors import ConcurrentGenerationError, TimetableEngineError
from .leases import InMemoryLeaseStore, Lease, LeaseStore
from .model_builder import build_school_model
from .output.persist import TimetableStore, commit_result
from .output.schema import GenerationResult, GenerationStatus
from .runtime import CancelToken, ProgressTracker

logger = logging.getLogger(__name__)


class GenerationJob:
    """Handle of one running (or finished) generation."""

    def __init__(self, school_id: str, run_id: str, cancel: CancelToken, progress: ProgressTracker):
        self.school_id = school_id
        self.run_id = run_id
        self.timetable_id: Optional[str] = None
        self._cancel = cancel
        self._progress = progress
        self._done = threading.Event()
        self._result: Optional[GenerationResult] = None
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def status(self) -> GenerationStatus:
        return self._progress.snapshot()

    def cancel(self) -> None:
        """Ask the worker to stop at its next node or iteration boundary."""
        logger.info("Cancelling run %s for school %s", self.run_id, self.school_id)
        self._cancel.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> GenerationResult:
        """
        Wait for the run and return its result.

        Raises:
            TimeoutError: if the run is still going after ``timeout`` seconds
            Exception: whatever the worker raised
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Run {self.run_id} for school {self.school_id} is still running")
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise TimetableEngineError(f"Run {self.run_id} for school {self.school_id} finished without a result")
        return self._result


class GenerationService:
    """
    Submits generations, one worker thread per school.

    Usage:
        service = GenerationService(store=JsonTimetableStore("timetables"))
        job = service.submit(request)
        job.status()
        result = job.result(timeout=60)
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        store: TimetableStore | None = None,
        lease_store: LeaseStore | None = None,
        generator: TimetableGenerator | None = None,
        renew_interval: Optional[float] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.lease_store = lease_store or InMemoryLeaseStore(ttl_seconds=self.settings.lease_ttl_seconds)
        self.generator = generator or TimetableGenerator(self.settings)
        self.renew_interval = renew_interval or self.lease_store.ttl_seconds / 3
        self._jobs: dict[str, GenerationJob] = {}
        self._jobs_lock = threading.Lock()

    def submit(
        self,
        request: Union[GenerationRequest, Mapping[str, Any]],
        *,
        deadline_seconds: Optional[float] = None,
    ) -> GenerationJob:
        """
        Validate a request and start generating it in the background.

        Args:
            request: Generation request (model or raw mapping)
            deadline_seconds: Cancel the run after this many seconds

        Returns:
            Handle of the started job

        Raises:
            InvalidInputError: if the request is rejected by validation
            ConcurrentGenerationError: if the school already has a run in progress
        """
        if not isinstance(request, GenerationRequest):
            request = parse_request(request)
        # Fail fast, before taking the lease
        build_school_model(request)

        run_id = uuid.uuid4().hex
        lease = self.lease_store.acquire(request.school_id, owner=run_id)

        deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None
        job = GenerationJob(
            request.school_id,
            run_id,
            CancelToken(deadline),
            ProgressTracker(request.school_id, run_id),
        )
        thread = threading.Thread(
            target=self._work,
            args=(job, request, lease),
            name=f"timetable-{request.school_id}",
            daemon=True,
        )
        job._thread = thread
        with self._jobs_lock:
            self._jobs[request.school_id] = job
        logger.info("Submitted run %s for school %s", run_id, request.school_id)
        thread.start()
        return job

    def job(self, school_id: str) -> Optional[GenerationJob]:
        """The latest job submitted for a school."""
        with self._jobs_lock:
            return self._jobs.get(school_id)

    def status(self, school_id: str) -> GenerationStatus:
        job = self.job(school_id)
        if job is None:
            return GenerationStatus(schoolId=school_id)
        return job.status()

    def cancel(self, school_id: str) -> bool:
        job = self.job(school_id)
        if job is None or job.done:
            return False
        job.cancel()
        return True

    def _work(self, job: GenerationJob, request: GenerationRequest, lease: Lease) -> None:
        stop_renewal = threading.Event()
        renewer = threading.Thread(
            target=self._renew_lease,
            args=(job, lease, stop_renewal),
            name=f"timetable-lease-{job.school_id}",
            daemon=True,
        )
        renewer.start()
        try:
            result = self.generator.generate(
                request, cancel=job._cancel, progress=job._progress, run_id=job.run_id
            )
            if result.is_solved and self.store is not None:
                job.timetable_id = commit_result(self.store, result).id
            job._result = result
        except Exception as e:
            logger.exception("Run %s for school %s failed", job.run_id, job.school_id)
            snapshot = job._progress.snapshot()
            job._progress.finish(snapshot.state, snapshot.placed, error=str(e))
            job._error = e
        finally:
            stop_renewal.set()
            renewer.join()
            self.lease_store.release(lease)
            job._done.set()

    def _renew_lease(self, job: GenerationJob, lease: Lease, stop: threading.Event) -> None:
        while not stop.wait(self.renew_interval):
            try:
                lease = self.lease_store.renew(lease)
            except ConcurrentGenerationError as e:
                logger.error(
                    "Run %s lost the lease on school %s to %s; cancelling",
                    job.run_id, job.school_id, e.owner,
                )
                job._cancel.cancel()
                return
            logger.debug("Run %s renewed the lease on school %s until %.0f",
                         job.run_id, job.school_id, lease.expires_at)
