"""Request models, loading and synthetic data."""

from .models import (
    RoomType,
    Distribution,
    PeriodRef,
    SlotTime,
    BreakTime,
    PeriodGrid,
    Qualification,
    Teacher,
    SchoolClass,
    Subject,
    Room,
    ClassSubjectRequirement,
    LockedAssignment,
    Budget,
    GenerationRequest,
    DAY_NAMES,
    day_name,
)
from .loader import parse_request, load_request, save_request
from .generator import (
    GeneratorConfig,
    generate_request,
    generate_small_school,
    generate_medium_school,
    generate_tight_school,
    get_generation_stats,
    SCHOOL_SIZES,
)

__all__ = [
    # Models
    "RoomType",
    "Distribution",
    "PeriodRef",
    "SlotTime",
    "BreakTime",
    "PeriodGrid",
    "Qualification",
    "Teacher",
    "SchoolClass",
    "Subject",
    "Room",
    "ClassSubjectRequirement",
    "LockedAssignment",
    "Budget",
    "GenerationRequest",
    "DAY_NAMES",
    "day_name",
    # Loader
    "parse_request",
    "load_request",
    "save_request",
    # Generator
    "GeneratorConfig",
    "generate_request",
    "generate_small_school",
    "generate_medium_school",
    "generate_tight_school",
    "get_generation_stats",
    "SCHOOL_SIZES",
]
