"""Timetable Engine - school timetable generation by backtracking search and annealing repair."""

from .config import EngineSettings, get_settings
from .data.models import GenerationRequest
from .engine import TimetableGenerator, generate_timetable
from .errors import (
    TimetableEngineError,
    InvalidInputError,
    UnsatisfiableRequirementError,
    PartialSolutionWarning,
    GenerationTimeoutError,
    ConcurrentGenerationError,
    TimetableInvariantError,
    ManualEditRejected,
)
from .jobs import GenerationJob, GenerationService
from .leases import FileLeaseStore, InMemoryLeaseStore
from .model_builder import TimetableModelBuilder, build_school_model
from .output.schema import GenerationResult, GenerationStatus, ManualEdit, EditResult, SolveState
from .runtime import CancelToken, ProgressTracker

__all__ = [
    # Configuration
    "EngineSettings",
    "get_settings",
    # Generation
    "GenerationRequest",
    "GenerationResult",
    "GenerationStatus",
    "SolveState",
    "TimetableGenerator",
    "TimetableModelBuilder",
    "build_school_model",
    "generate_timetable",
    "CancelToken",
    "ProgressTracker",
    # Jobs
    "GenerationService",
    "GenerationJob",
    "InMemoryLeaseStore",
    "FileLeaseStore",
    # Manual edits
    "ManualEdit",
    "EditResult",
    # Errors
    "TimetableEngineError",
    "InvalidInputError",
    "UnsatisfiableRequirementError",
    "PartialSolutionWarning",
    "GenerationTimeoutError",
    "ConcurrentGenerationError",
    "TimetableInvariantError",
    "ManualEditRejected",
]
