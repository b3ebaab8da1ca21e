"""Generation results, persistence and export formats."""

from .schema import (
    SolveState,
    Cell,
    TimetableGrid,
    ScoreBreakdown,
    ClassCoverage,
    RunStatistics,
    Diagnostic,
    CompetingAssignment,
    ConflictEntry,
    ConflictReport,
    Suggestion,
    GenerationResult,
    GenerationStatus,
    EditedCell,
    PersistedTimetable,
    ManualEdit,
    EditResult,
    empty_grid,
    to_grid,
    iter_cells,
)
from .persist import (
    TimetableStore,
    InMemoryTimetableStore,
    JsonTimetableStore,
    occupancy_from_grid,
    verify_timetable,
    persisted_from_result,
    commit_result,
    revalidate_edit,
    apply_edit,
)
from .formatters import (
    CSVFormatter,
    format_json,
    format_csv,
    format_html,
    format_console,
    print_timetable,
    class_table,
    export_timetable,
    save_export,
    EXPORT_FORMATS,
    DAY_ABBREV,
)
from .suggestions import generate_suggestions

__all__ = [
    # Schema models
    "SolveState",
    "Cell",
    "TimetableGrid",
    "ScoreBreakdown",
    "ClassCoverage",
    "RunStatistics",
    "Diagnostic",
    "CompetingAssignment",
    "ConflictEntry",
    "ConflictReport",
    "Suggestion",
    "GenerationResult",
    "GenerationStatus",
    "EditedCell",
    "PersistedTimetable",
    "ManualEdit",
    "EditResult",
    # Grid helpers
    "empty_grid",
    "to_grid",
    "iter_cells",
    # Persistence
    "TimetableStore",
    "InMemoryTimetableStore",
    "JsonTimetableStore",
    "occupancy_from_grid",
    "verify_timetable",
    "persisted_from_result",
    "commit_result",
    "revalidate_edit",
    "apply_edit",
    # Formatters
    "CSVFormatter",
    "format_json",
    "format_csv",
    "format_html",
    "format_console",
    "print_timetable",
    "class_table",
    "export_timetable",
    "save_export",
    "EXPORT_FORMATS",
    "DAY_ABBREV",
    # Suggestions
    "generate_suggestions",
]
