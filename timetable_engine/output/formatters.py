"""
Output formatters for generated timetables.

This module provides formatters for the export formats:
- JSON: the full result or persisted timetable, camelCase keys
- CSV: one row per occupied cell, for spreadsheets
- HTML: one table per class, printable
- Console: rich tables for the CLI
"""

from __future__ import annotations

import csv
import html
from io import StringIO
from pathlib import Path
from typing import Optional, TextIO, Union

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..data.models import GenerationRequest, day_name
from .schema import GenerationResult, PersistedTimetable, SolveState, TimetableGrid, iter_cells

TimetableSource = Union[GenerationResult, PersistedTimetable]

DAY_ABBREV = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

EXPORT_FORMATS = ("json", "csv", "html")


# =============================================================================
# Helpers
# =============================================================================

class _Names:
    """Display names for ids, falling back to the id itself."""

    def __init__(self, request: Optional[GenerationRequest]):
        self.teachers = {t.id: t.name for t in request.teachers} if request else {}
        self.classes = {c.id: c.name for c in request.classes} if request else {}
        self.subjects = {s.id: s.name for s in request.subjects} if request else {}
        self.rooms = {r.id: r.name for r in request.rooms} if request else {}

    def teacher(self, teacher_id: str) -> str:
        return self.teachers.get(teacher_id, teacher_id)

    def klass(self, class_id: str) -> str:
        return self.classes.get(class_id, class_id)

    def subject(self, subject_id: str) -> str:
        return self.subjects.get(subject_id, subject_id)

    def room(self, room_id: Optional[str]) -> str:
        if room_id is None:
            return ""
        return self.rooms.get(room_id, room_id)


def _slot_times(request: Optional[GenerationRequest], slot: int) -> tuple[str, str]:
    if request is not None and slot < len(request.grid.slot_times):
        times = request.grid.slot_times[slot]
        return times.start, times.end
    return "", ""


def _slot_label(request: Optional[GenerationRequest], slot: int) -> str:
    if request is not None:
        return request.grid.slot_label(slot)
    return f"P{slot + 1}"


# =============================================================================
# JSON Formatter
# =============================================================================

def format_json(source: TimetableSource, indent: int = 2) -> str:
    """Serialize a result or persisted timetable to JSON."""
    return source.to_json(indent=indent)


# =============================================================================
# CSV Formatter
# =============================================================================

class CSVFormatter:
    """Formats a timetable grid as CSV."""

    DEFAULT_COLUMNS = [
        'class_id', 'class_name', 'day', 'day_name', 'period', 'start_time', 'end_time',
        'subject_id', 'subject_name', 'teacher_id', 'teacher_name', 'room_id', 'room_name',
    ]

    MINIMAL_COLUMNS = [
        'class_name', 'day_name', 'period', 'subject_name', 'teacher_name', 'room_name',
    ]

    def __init__(
        self,
        columns: list[str] | None = None,
        include_header: bool = True,
        delimiter: str = ',',
    ):
        self.columns = columns or self.DEFAULT_COLUMNS
        self.include_header = include_header
        self.delimiter = delimiter

    def format(self, grid: TimetableGrid, request: Optional[GenerationRequest] = None) -> str:
        buffer = StringIO()
        self.write(grid, buffer, request)
        return buffer.getvalue()

    def write(self, grid: TimetableGrid, file: TextIO, request: Optional[GenerationRequest] = None) -> None:
        """
        Write CSV to a file-like object.

        Args:
            grid: class -> day -> slot -> cell
            file: File-like object to write to
            request: Source request, used for names and slot times
        """
        writer = csv.writer(file, delimiter=self.delimiter, lineterminator="\n")
        names = _Names(request)

        if self.include_header:
            writer.writerow(self.columns)

        for class_id, day, slot, cell in iter_cells(grid):
            start, end = _slot_times(request, slot)
            field_map = {
                'class_id': class_id,
                'class_name': names.klass(class_id),
                'day': str(day),
                'day_name': day_name(day),
                'period': str(slot + 1),
                'start_time': start,
                'end_time': end,
                'subject_id': cell.subject_id,
                'subject_name': names.subject(cell.subject_id),
                'teacher_id': cell.teacher_id,
                'teacher_name': names.teacher(cell.teacher_id),
                'room_id': cell.room_id or '',
                'room_name': names.room(cell.room_id),
            }
            writer.writerow([field_map.get(col, '') for col in self.columns])


def format_csv(source: TimetableSource, minimal: bool = False) -> str:
    columns = CSVFormatter.MINIMAL_COLUMNS if minimal else None
    return CSVFormatter(columns=columns).format(source.timetable, source.request)


# =============================================================================
# HTML Formatter
# =============================================================================

_HTML_STYLE = """
body { font-family: Arial, sans-serif; margin: 2em; }
h1 { font-size: 1.4em; }
h2 { font-size: 1.1em; margin-top: 2em; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #999; padding: 4px 6px; text-align: center; vertical-align: top; }
th { background: #eee; }
td.empty { color: #bbb; }
td .teacher, td .room { display: block; font-size: 0.85em; color: #555; }
"""


def format_html(source: TimetableSource, class_id: Optional[str] = None) -> str:
    """
    Render one table per class (rows: periods, columns: days).

    Args:
        source: Result or persisted timetable
        class_id: Only render this class

    Returns:
        Standalone HTML document
    """
    request = source.request
    names = _Names(request)
    grid = source.timetable
    esc = html.escape

    title = f"Timetable {source.school_id}" + (f" ({source.term})" if source.term else "")
    parts = [
        "<!DOCTYPE html>",
        "<html><head><meta charset=\"utf-8\">",
        f"<title>{esc(title)}</title>",
        f"<style>{_HTML_STYLE}</style>",
        "</head><body>",
        f"<h1>{esc(title)}</h1>",
    ]

    for cid, days in grid.items():
        if class_id is not None and cid != class_id:
            continue
        parts.append(f"<h2>{esc(names.klass(cid))}</h2>")
        parts.append("<table><thead><tr><th>Period</th>")
        parts.extend(f"<th>{esc(day_name(d))}</th>" for d in range(len(days)))
        parts.append("</tr></thead><tbody>")

        slots_per_day = len(days[0]) if days else 0
        for slot in range(slots_per_day):
            parts.append(f"<tr><th>{esc(_slot_label(request, slot))}</th>")
            for d in range(len(days)):
                cell = days[d][slot]
                if cell is None:
                    parts.append("<td class=\"empty\">-</td>")
                    continue
                room = names.room(cell.room_id)
                parts.append(
                    "<td>"
                    f"{esc(names.subject(cell.subject_id))}"
                    f"<span class=\"teacher\">{esc(names.teacher(cell.teacher_id))}</span>"
                    + (f"<span class=\"room\">{esc(room)}</span>" if room else "")
                    + "</td>"
                )
            parts.append("</tr>")
        parts.append("</tbody></table>")

    parts.append("</body></html>")
    return "\n".join(parts)


# =============================================================================
# Console Formatter
# =============================================================================

STATUS_STYLES = {
    SolveState.SOLVED: "green",
    SolveState.PARTIAL: "yellow",
    SolveState.TIMED_OUT: "red",
}


def class_table(source: TimetableSource, class_id: str) -> Table:
    """Rich table of one class: rows are periods, columns are days."""
    request = source.request
    names = _Names(request)
    days = source.timetable[class_id]

    table = Table(title=names.klass(class_id), show_header=True, header_style="bold cyan")
    table.add_column("Period", style="dim")
    for d in range(len(days)):
        table.add_column(DAY_ABBREV[d] if d < len(DAY_ABBREV) else f"D{d}", justify="center")

    slots_per_day = len(days[0]) if days else 0
    for slot in range(slots_per_day):
        row = [_slot_label(request, slot)]
        for d in range(len(days)):
            cell = days[d][slot]
            if cell is None:
                row.append("[dim]-[/dim]")
            else:
                text = f"[bold]{names.subject(cell.subject_id)}[/bold]\n{names.teacher(cell.teacher_id)}"
                if cell.room_id:
                    text += f"\n[dim]{names.room(cell.room_id)}[/dim]"
                if cell.locked:
                    text += " [magenta]*[/magenta]"
                row.append(text)
        table.add_row(*row)
    return table


def print_timetable(
    source: TimetableSource,
    console: Optional[Console] = None,
    class_id: Optional[str] = None,
) -> None:
    """Print class grids (all classes, or one) to a rich console."""
    console = console or Console()
    if isinstance(source, GenerationResult):
        style = STATUS_STYLES.get(source.status, "white")
        console.print(Panel(
            f"Status: [{style}]{source.status.value.upper()}[/{style}]   "
            f"Placed: {source.placed}/{source.total_occurrences}   Score: {source.score.total}",
            title=f"Timetable {source.school_id}",
        ))
    for cid in source.timetable:
        if class_id is None or cid == class_id:
            console.print(class_table(source, cid))


def format_console(source: TimetableSource, class_id: Optional[str] = None, width: int = 120) -> str:
    """Render the console view to plain text."""
    console = Console(record=True, width=width)
    print_timetable(source, console, class_id)
    return console.export_text()


# =============================================================================
# File Writing Utilities
# =============================================================================

def export_timetable(source: TimetableSource, fmt: str) -> str:
    """
    Render a timetable in one of EXPORT_FORMATS.

    Raises:
        ValueError: for an unknown format
    """
    fmt = fmt.lower()
    if fmt == "json":
        return format_json(source)
    if fmt == "csv":
        return format_csv(source)
    if fmt == "html":
        return format_html(source)
    raise ValueError(f"Unknown export format '{fmt}' (expected one of: {', '.join(EXPORT_FORMATS)})")


def save_export(source: TimetableSource, fmt: str, filepath: Union[str, Path]) -> Path:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    filepath.write_text(export_timetable(source, fmt), encoding="utf-8")
    return filepath
