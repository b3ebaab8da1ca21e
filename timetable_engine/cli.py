"""
Command-line interface for the timetable engine.

Usage:
    python -m timetable_engine generate request.json -o result.json --seed 7
    python -m timetable_engine validate request.json
    python -m timetable_engine view result.json --class c1
    python -m timetable_engine export result.json --format csv -o timetable.csv
    python -m timetable_engine edit timetables/ <timetable-id> --class c1 --day mon --slot 0 --teacher t2
    python -m timetable_engine sample --size small -o request.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Union

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from .config import get_settings
from .data.generator import SCHOOL_SIZES, get_generation_stats
from .data.loader import load_request, parse_request, save_request
from .data.models import DAY_NAMES, GenerationRequest, PeriodGrid
from .engine import TimetableGenerator
from .errors import InvalidInputError, TimetableEngineError
from .log import setup_logging
from .model_builder import build_school_model, capacity_warnings
from .output.formatters import EXPORT_FORMATS, export_timetable, print_timetable, save_export
from .output.persist import JsonTimetableStore, apply_edit, commit_result
from .output.schema import GenerationResult, ManualEdit, PersistedTimetable, SolveState

# Create Typer app
app = typer.Typer(
    name="timetable-engine",
    help="School timetable generation: backtracking search with annealing repair.",
    add_completion=False,
)

# Rich console for pretty output
console = Console()

DAY_MAP = {name.lower(): i for i, name in enumerate(DAY_NAMES)}
DAY_MAP.update({name[:3].lower(): i for i, name in enumerate(DAY_NAMES)})

STATUS_COLORS = {
    SolveState.SOLVED: "green",
    SolveState.PARTIAL: "yellow",
    SolveState.TIMED_OUT: "red",
}


# =============================================================================
# Helper Functions
# =============================================================================

def load_input(input_path: Path) -> GenerationRequest:
    """Load and validate a generation request."""
    if not input_path.exists():
        console.print(f"[red]Error:[/red] Input file not found: {input_path}")
        raise typer.Exit(code=1)

    try:
        return load_request(input_path)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON:[/red] {e}")
        raise typer.Exit(code=1)
    except InvalidInputError as e:
        _print_invalid(e)
        raise typer.Exit(code=1)


def load_timetable(path: Path) -> Union[GenerationResult, PersistedTimetable]:
    """Load a generation result or a persisted timetable."""
    if not path.exists():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(code=1)

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if "status" in data:
            return GenerationResult.model_validate(data)
        return PersistedTimetable.model_validate(data)
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        console.print(f"[red]Error loading timetable:[/red] {e}")
        raise typer.Exit(code=1)


def parse_day(value: str) -> int:
    """Accept a day index (0 = Monday) or a day name."""
    if value.isdigit():
        return int(value)
    day = DAY_MAP.get(value.lower())
    if day is None:
        console.print(f"[red]Error:[/red] Invalid day '{value}'")
        console.print(f"Valid days: {', '.join(name.lower() for name in DAY_NAMES)}")
        raise typer.Exit(code=1)
    return day


def _print_invalid(error: InvalidInputError) -> None:
    console.print("[red]Invalid input:[/red]")
    for message in error.errors:
        console.print(f"  - {message}", markup=False)


def print_summary(result: GenerationResult) -> None:
    """Print run summary to console."""
    color = STATUS_COLORS.get(result.status, "white")
    status_text = Text(result.status.value.upper(), style=f"bold {color}")

    console.print(Panel(
        status_text,
        title="Generation Status",
        subtitle=f"Finished in {result.statistics.elapsed_seconds:.2f}s",
    ))

    table = Table(title="Summary", show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Run", result.run_id)
    table.add_row("Seed", str(result.seed))
    table.add_row("Placed", f"{result.placed}/{result.total_occurrences}")
    table.add_row("Classes complete", f"{sum(c.complete for c in result.coverage)}/{len(result.coverage)}")
    table.add_row("Search nodes", f"{result.statistics.nodes}/{result.statistics.node_budget}")
    table.add_row("Repair iterations", str(result.statistics.repair_iterations))
    table.add_row("Score", str(result.score.total))
    if result.cancelled:
        table.add_row("Cancelled", "yes")

    console.print(table)


def print_diagnostics(result: GenerationResult) -> None:
    if result.diagnostics:
        console.print("\n[bold]Diagnostics:[/bold]")
        for diagnostic in result.diagnostics:
            console.print(f"  [yellow]{diagnostic.kind}[/yellow] {diagnostic.message}", highlight=False)

    if result.conflicts is not None and not result.conflicts.is_empty:
        table = Table(title="Conflicts", show_header=True, header_style="bold cyan")
        table.add_column("Requirement")
        table.add_column("Unplaced", justify="right")
        table.add_column("Reason")
        table.add_column("Contended")
        for entry in result.conflicts.entries:
            contended = ", ".join(str(p) for p in entry.contended_periods[:4])
            if len(entry.contended_periods) > 4:
                contended += f" (+{len(entry.contended_periods) - 4})"
            table.add_row(entry.requirement_id, str(entry.unplaced), entry.reason, contended)
        console.print(table)

    if result.suggestions:
        console.print(f"\n[dim]{len(result.suggestions)} suggestion(s) in the result file[/dim]")


# =============================================================================
# Commands
# =============================================================================

@app.command()
def generate(
    input_file: Path = typer.Argument(
        ...,
        help="Path to the generation request JSON",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Path to write the result JSON",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed (overrides the request)",
    ),
    time_limit: Optional[float] = typer.Option(
        None,
        "--time-limit", "-t",
        help="Search wall-clock limit in seconds",
        min=0.1,
    ),
    node_budget: Optional[int] = typer.Option(
        None,
        "--node-budget",
        help="Backtracking node budget",
        min=1,
    ),
    trials: Optional[int] = typer.Option(
        None,
        "--trials",
        help="Independent trials with derived seeds",
        min=1,
        max=32,
    ),
    store: Optional[Path] = typer.Option(
        None,
        "--store",
        help="Directory to commit the timetable to when solved",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show engine logs and per-class coverage",
    ),
) -> None:
    """
    Generate a timetable.

    Example:
        python -m timetable_engine generate request.json -o result.json --seed 7
    """
    settings = get_settings()
    if verbose:
        setup_logging(environment=settings.environment, level=settings.log_level)

    console.print(f"\n[bold]Loading request from:[/bold] {input_file}")
    request = load_input(input_file)

    overrides = {
        key: value
        for key, value in {
            "time_limit_seconds": time_limit,
            "node_budget": node_budget,
            "parallel_trials": trials,
        }.items()
        if value is not None
    }
    update: dict = {"budget": request.budget.model_copy(update=overrides)}
    if seed is not None:
        update["seed"] = seed
    request = request.model_copy(update=update)

    console.print(
        f"[green]Loaded:[/green] {len(request.classes)} classes, {len(request.teachers)} teachers, "
        f"{len(request.requirements)} requirements ({request.total_occurrences} occurrences)"
    )

    generator = TimetableGenerator(settings)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Searching...", total=None)
            result = generator.generate(request)
    except InvalidInputError as e:
        _print_invalid(e)
        raise typer.Exit(code=1)

    console.print()
    print_summary(result)
    print_diagnostics(result)

    if verbose:
        for coverage in result.coverage:
            mark = "[green]ok[/green]" if coverage.complete else "[yellow]incomplete[/yellow]"
            console.print(f"  {coverage.class_id}: {coverage.placed}/{coverage.required} {mark}")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.to_json(), encoding="utf-8")
        console.print(f"\n[green]Result saved to:[/green] {output}")

    if store:
        if result.is_solved:
            committed = commit_result(JsonTimetableStore(store), result)
            console.print(f"[green]Committed timetable:[/green] {committed.id}")
        else:
            console.print("[yellow]Not committed:[/yellow] only solved timetables are stored")

    console.print()


@app.command()
def validate(
    input_file: Path = typer.Argument(
        ...,
        help="Path to the generation request JSON to validate",
    ),
) -> None:
    """
    Validate a generation request without searching.

    Checks for:
    - Valid JSON structure
    - Schema compliance and reference integrity
    - Impossible requirements and invalid locked cells
    - Capacity problems that usually prevent a full timetable
    """
    console.print(f"\n[bold]Validating:[/bold] {input_file}\n")

    if not input_file.exists():
        console.print(f"[red]Error:[/red] File not found: {input_file}")
        raise typer.Exit(code=1)

    # Step 1: JSON parsing
    console.print("[cyan]1. Checking JSON syntax...[/cyan]")
    try:
        raw_data = json.loads(input_file.read_text(encoding="utf-8"))
        console.print("   [green]JSON syntax is valid[/green]")
    except json.JSONDecodeError as e:
        console.print(f"   [red]Invalid JSON:[/red] {e}")
        raise typer.Exit(code=1)

    # Step 2: Schema validation
    console.print("[cyan]2. Validating against schema...[/cyan]")
    try:
        request = parse_request(raw_data)
        console.print("   [green]Schema validation passed[/green]")
    except InvalidInputError as e:
        _print_invalid(e)
        raise typer.Exit(code=1)

    # Step 3: Model building
    console.print("[cyan]3. Checking requirements and locked cells...[/cyan]")
    try:
        model = build_school_model(request)
        console.print("   [green]Request can be scheduled as given[/green]")
    except InvalidInputError as e:
        _print_invalid(e)
        raise typer.Exit(code=1)

    # Step 4: Capacity
    console.print("[cyan]4. Checking capacity...[/cyan]")
    warnings = capacity_warnings(model)
    if warnings:
        console.print("   [yellow]Warnings found:[/yellow]")
        for w in warnings:
            console.print(f"   - {w}", markup=False)
    else:
        console.print("   [green]No capacity issues[/green]")

    console.print("\n[bold]Summary:[/bold]")
    table = Table(show_header=False, box=None)
    table.add_column("Entity", style="cyan")
    table.add_column("Count", style="white")
    for key, value in request.summary().items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(table)

    console.print("\n[green]Validation complete.[/green]\n")


@app.command()
def view(
    timetable_file: Path = typer.Argument(
        ...,
        help="Path to a result or persisted timetable JSON",
    ),
    class_id: Optional[str] = typer.Option(
        None,
        "--class", "-C",
        help="Show only this class",
    ),
) -> None:
    """
    Display class timetables as grids.

    Examples:
        python -m timetable_engine view result.json
        python -m timetable_engine view result.json --class c1
    """
    source = load_timetable(timetable_file)
    if class_id is not None and class_id not in source.timetable:
        console.print(f"[red]Error:[/red] Class '{class_id}' not found")
        console.print(f"Available classes: {', '.join(source.timetable.keys())}")
        raise typer.Exit(code=1)
    print_timetable(source, console, class_id)


@app.command()
def export(
    timetable_file: Path = typer.Argument(
        ...,
        help="Path to a result or persisted timetable JSON",
    ),
    format: str = typer.Option(
        "json",
        "--format", "-f",
        help=f"Export format: {', '.join(EXPORT_FORMATS)}",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="File to write; prints to stdout when omitted",
    ),
) -> None:
    """
    Export a timetable as JSON, CSV or HTML.

    Example:
        python -m timetable_engine export result.json --format html -o timetable.html
    """
    if format.lower() not in EXPORT_FORMATS:
        console.print(f"[red]Error:[/red] Unknown format '{format}'")
        console.print(f"Valid formats: {', '.join(EXPORT_FORMATS)}")
        raise typer.Exit(code=1)

    source = load_timetable(timetable_file)
    if output:
        save_export(source, format, output)
        console.print(f"[green]Exported to:[/green] {output}")
    else:
        typer.echo(export_timetable(source, format))


@app.command()
def edit(
    store_dir: Path = typer.Argument(
        ...,
        help="Timetable store directory",
    ),
    timetable_id: str = typer.Argument(
        ...,
        help="Id of the committed timetable",
    ),
    class_id: str = typer.Option(..., "--class", "-C", help="Class of the edited cell"),
    day: str = typer.Option(..., "--day", "-D", help="Day index or name"),
    slot: int = typer.Option(..., "--slot", "-S", help="Slot within the day (0-based)", min=0),
    teacher: str = typer.Option(..., "--teacher", "-T", help="New teacher id"),
    room: Optional[str] = typer.Option(None, "--room", "-R", help="New room id"),
) -> None:
    """
    Reassign the teacher of one cell, re-checking hard constraints.

    Example:
        python -m timetable_engine edit timetables/ 3f2a... --class c1 --day mon --slot 0 --teacher t2
    """
    if not store_dir.is_dir():
        console.print(f"[red]Error:[/red] Store directory not found: {store_dir}")
        raise typer.Exit(code=1)

    manual_edit = ManualEdit(
        timetableId=timetable_id,
        classId=class_id,
        day=parse_day(day),
        slot=slot,
        teacherId=teacher,
        roomId=room,
    )
    try:
        result = apply_edit(JsonTimetableStore(store_dir), manual_edit)
    except KeyError:
        console.print(f"[red]Error:[/red] Timetable '{timetable_id}' not found in {store_dir}")
        raise typer.Exit(code=1)
    except TimetableEngineError as e:
        console.print(f"[red]Error:[/red] {e}", markup=False)
        raise typer.Exit(code=1)

    if result.accepted:
        console.print("[green]Edit accepted[/green]")
    else:
        console.print(f"[red]Edit rejected:[/red] {result.violated_constraint}")
        if result.detail:
            console.print(f"  {result.detail}", markup=False)
        raise typer.Exit(code=1)


@app.command()
def template() -> None:
    """Print the default period grid (5 days x 8 periods, breaks) as JSON."""
    console.print_json(PeriodGrid.default().model_dump_json())


@app.command()
def sample(
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Path to write the generated request",
    ),
    size: str = typer.Option(
        "small",
        "--size",
        help=f"School size: {', '.join(SCHOOL_SIZES)}",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Random seed for reproducible data",
    ),
) -> None:
    """
    Write a synthetic generation request.

    Example:
        python -m timetable_engine sample --size tight --seed 1 -o tight.json
    """
    factory = SCHOOL_SIZES.get(size.lower())
    if factory is None:
        console.print(f"[red]Error:[/red] Unknown size '{size}'")
        console.print(f"Valid sizes: {', '.join(SCHOOL_SIZES)}")
        raise typer.Exit(code=1)

    request = factory(seed)
    save_request(request, output)

    stats = get_generation_stats(request)
    console.print(f"[green]Sample request saved to:[/green] {output}")
    console.print(
        f"  {stats['classes']} classes, {stats['teachers']} teachers, "
        f"{stats['total_occurrences']} occurrences, utilization {stats['teacher_utilization']:.0%}"
    )


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
