"""
Error taxonomy for timetable generation.

Only InvalidInputError and ConcurrentGenerationError escape a generation
request. The other kinds describe outcomes that still come with a
best-effort timetable; they are recorded as diagnostics on the result.
"""

from __future__ import annotations

from typing import Optional


class TimetableEngineError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(TimetableEngineError):
    """Malformed or impossible input, rejected before search starts."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(
            "Invalid generation input:\n" + "\n".join(f"  - {e}" for e in self.errors)
        )


class UnsatisfiableRequirementError(TimetableEngineError):
    """A requirement has no feasible (teacher, period, room) value at all."""

    def __init__(self, requirement_id: str, reason: str, detail: str = ""):
        self.requirement_id = requirement_id
        self.reason = reason
        self.detail = detail
        message = f"Requirement {requirement_id} cannot be scheduled ({reason})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PartialSolutionWarning(UserWarning):
    """Search exhausted its budget without placing every occurrence."""


class GenerationTimeoutError(TimetableEngineError, TimeoutError):
    """The wall-clock budget ran out before a complete timetable was found."""


class ConcurrentGenerationError(TimetableEngineError):
    """A generation is already running for this school."""

    def __init__(self, school_id: str, owner: Optional[str] = None, expires_at: Optional[float] = None):
        self.school_id = school_id
        self.owner = owner
        self.expires_at = expires_at
        super().__init__(f"A timetable generation is already running for school '{school_id}'")


class TimetableInvariantError(TimetableEngineError):
    """A timetable failed hard-constraint verification and cannot be committed."""

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__(
            "Timetable violates hard constraints:\n" + "\n".join(f"  - {v}" for v in self.violations)
        )


class ManualEditRejected(TimetableEngineError):
    """A manual edit would violate a hard constraint."""

    def __init__(self, violated_constraint: str, detail: str = ""):
        self.violated_constraint = violated_constraint
        self.detail = detail
        message = f"Edit rejected: {violated_constraint}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
