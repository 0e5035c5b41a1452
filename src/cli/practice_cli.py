"""
Practice CLI: terminal front-end for the adaptive practice scheduler.

Commands:
    practice interval TAU       - Forgetting-curve interval for a tau
    practice factor PERF        - Score and adjustment factor for a performance
    practice add-piece TITLE    - Register a music piece
    practice add-section ...    - Add a section to a piece
    practice complete ...       - Record a practice session and reschedule
    practice transition ...     - Change a section's lifecycle state
    practice show               - Sections with stage and next review
    practice upcoming           - Planned sessions for the coming days
    practice stats SECTION      - Memory stability statistics
    practice calibration        - Personal calibration summary
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from src.scheduling.errors import InvalidInputError, PersistenceCapacityExceededError
from src.scheduling.forgetting_curve import ForgettingCurveModel
from src.scheduling.models import LifecycleState, Performance, SessionOutcome
from src.scheduling.performance import PerformanceAdjuster

console = Console()

app = typer.Typer(
    name="practice",
    help="Adaptive practice scheduler - Ebbinghaus intervals for music sections",
    no_args_is_help=True,
)

STATE_STYLES = {
    LifecycleState.ACTIVE: "green",
    LifecycleState.MAINTENANCE: "cyan",
    LifecycleState.INACTIVE: "dim",
}


def _open_context(ctx: typer.Context):
    """Lazy load the profile context so pure commands need no database."""
    from src.scheduling.context import ProfileContext
    from src.scheduling.profile_store import ProfileStore

    settings = get_settings()
    options = ctx.obj or {}
    store = ProfileStore.from_settings(settings, db_path=options.get("db"))
    user = options.get("user") or settings.default_user_id
    return ProfileContext.open(user, store, settings)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(code=1)


@app.callback()
def main_options(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Profile to operate on"),
    db: Optional[Path] = typer.Option(None, "--db", help="Profile database path"),
) -> None:
    ctx.obj = {"user": user, "db": db}


# =============================================================================
# Pure computations
# =============================================================================


@app.command("interval")
def interval_command(
    tau: float = typer.Argument(..., help="Decay-rate parameter in days"),
    target: float = typer.Option(0.8, "--target", "-r", help="Retention target (0-1)"),
) -> None:
    """Show the raw and clamped interval for a tau and retention target."""
    curve = ForgettingCurveModel()
    raw = curve.interval_for(tau, target)
    clamp = curve.clamp_to_scientific_bounds(raw, tau)

    table = Table(title="Forgetting-Curve Interval", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("Tau", f"{tau:.2f} days")
    table.add_row("Retention target", f"{target:.2f}")
    table.add_row("Raw interval", f"{raw:.2f} days")
    table.add_row("Clamped interval", f"{clamp.days:.2f} days")
    table.add_row("Clamp reason", clamp.reason)
    console.print(table)


@app.command("factor")
def factor_command(
    performance: str = typer.Argument(..., help="Poor, Fair, Good, Excellent or Incomplete"),
) -> None:
    """Show the score and interval adjustment factor of a performance."""
    try:
        perf = Performance(performance)
    except ValueError:
        _fail(f"Unknown performance: {performance}")
        return
    adjuster = PerformanceAdjuster()
    score = adjuster.score_for(perf)
    console.print(f"{perf.value}: score [bold]{score:.1f}[/bold], factor [bold]{adjuster.adjustment_factor(score):.3f}[/bold]")


# =============================================================================
# Profile commands
# =============================================================================


@app.command("add-piece")
def add_piece(ctx: typer.Context, title: str = typer.Argument(..., help="Piece title")) -> None:
    """Register a music piece."""
    context = _open_context(ctx)
    piece = context.add_piece(title)
    console.print(f"[green]Added piece[/green] {piece.title} [dim]({piece.id})[/dim]")


@app.command("add-section")
def add_section(
    ctx: typer.Context,
    piece_id: str = typer.Argument(..., help="Owning piece id"),
    name: str = typer.Argument(..., help="Section name, e.g. 'bars 1-8'"),
    difficulty: str = typer.Option("Average", "--difficulty", "-d", help="Easy, Average, Difficult or Mastered"),
) -> None:
    """Add a section to a piece; it is due today."""
    context = _open_context(ctx)
    try:
        section = context.add_section(piece_id, name, difficulty)
    except InvalidInputError as e:
        _fail(str(e))
        return
    console.print(f"[green]Added section[/green] {section.name} [dim]({section.id})[/dim]")


@app.command("complete")
def complete(
    ctx: typer.Context,
    section_id: str = typer.Argument(..., help="Practised section id"),
    performance: str = typer.Argument(..., help="Poor, Fair, Good, Excellent or Incomplete"),
    reps: int = typer.Option(1, "--reps", help="Successful repetitions"),
    failures: int = typer.Option(0, "--failures", help="Attempts before first success"),
    memory_failures: int = typer.Option(0, "--memory-failures", help="Streak resets during the session"),
    duration: int = typer.Option(0, "--duration", help="Session duration in seconds"),
) -> None:
    """Record a completed session and schedule the next review."""
    context = _open_context(ctx)
    try:
        section = context.get_section(section_id)
        outcome = SessionOutcome(
            section_id=section.id,
            practiced_at=datetime.now(),
            performance=Performance(performance),
            repetitions=reps,
            execution_failures=failures,
            memory_failures=memory_failures,
            duration_seconds=duration,
        )
        result = context.scheduler.complete_session(section, outcome)
    except ValueError as e:
        _fail(str(e))
        return
    except PersistenceCapacityExceededError as e:
        _fail(str(e))
        return

    lines = [
        f"Outcome: [bold]{result.outcome_kind.value}[/bold]",
        f"Interval: [bold]{result.interval}[/bold] day(s)",
        f"Next review: [bold]{result.next_review_date or '-'}[/bold]",
    ]
    if result.tau is not None:
        lines.append(f"Tau: {result.tau:.2f} days (clamp: {result.clamp.reason})")
    if result.stage_advanced:
        lines.append(f"[green]Advanced to stage {section.practice_schedule_stage}[/green]")
    console.print(Panel("\n".join(lines), title=section.name or section.id, border_style="cyan"))


@app.command("transition")
def transition(
    ctx: typer.Context,
    section_id: str = typer.Argument(..., help="Section id"),
    state: str = typer.Argument(..., help="active, maintenance or inactive"),
) -> None:
    """Change a section's lifecycle state."""
    context = _open_context(ctx)
    try:
        section = context.get_section(section_id)
        new_state = LifecycleState.parse(state)
    except InvalidInputError as e:
        _fail(str(e))
        return

    result = context.lifecycle.transition(section, new_state)
    if isinstance(result.persistence_error, PersistenceCapacityExceededError):
        _fail(str(result.persistence_error))
        return

    style = STATE_STYLES[new_state]
    console.print(
        f"Section {section.name or section.id}: {result.old_state.name} -> [{style}]{new_state.name}[/{style}]"
    )
    if section.next_review_date:
        console.print(f"  Next review: {section.next_review_date} (interval {section.interval}d)")
    if not result.ok:
        console.print("[yellow]Schedule not fully updated, see log for details[/yellow]")


@app.command("show")
def show(ctx: typer.Context) -> None:
    """List every section with its stage and next review."""
    context = _open_context(ctx)
    context.scheduler.refresh_overdue()

    table = Table(title=f"Sections - {context.user_id}")
    table.add_column("Piece", style="cyan")
    table.add_column("Section")
    table.add_column("ID", style="dim")
    table.add_column("Difficulty")
    table.add_column("State")
    table.add_column("Stage", justify="right")
    table.add_column("Zone")
    table.add_column("Reps", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Next review")

    for piece, section in context.profile.iter_sections():
        style = STATE_STYLES[section.lifecycle_state]
        next_review = str(section.next_review_date) if section.next_review_date else "-"
        if section.is_overdue:
            next_review = f"[red]{next_review}[/red]"
        table.add_row(
            piece.title,
            section.name,
            section.id[:8],
            section.difficulty.value,
            f"[{style}]{section.lifecycle_state.name}[/{style}]",
            str(section.practice_schedule_stage),
            section.memory_zone.value,
            f"{section.completed_repetitions}/{section.target_repetitions}",
            f"{section.interval}d",
            next_review,
        )
    console.print(table)


@app.command("upcoming")
def upcoming(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", help="Look-ahead window"),
) -> None:
    """Planned sessions for the coming days."""
    context = _open_context(ctx)
    sessions = context.upcoming(days)
    if not sessions:
        console.print("[dim]Nothing planned[/dim]")
        return

    table = Table(title=f"Planned sessions (next {days} days)")
    table.add_column("Date")
    table.add_column("Section")
    table.add_column("Minutes", justify="right")
    table.add_column("Tau", justify="right")
    for session in sessions:
        section = context.profile.find_section(session.section_id)
        table.add_row(
            str(session.scheduled_date),
            section.name if section else session.section_id,
            str(session.estimated_duration_minutes),
            f"{session.tau_value:.1f}",
        )
    console.print(table)


@app.command("stats")
def stats(ctx: typer.Context, section_id: str = typer.Argument(..., help="Section id")) -> None:
    """Memory stability statistics for a section."""
    context = _open_context(ctx)
    data = context.stability.get_stats(section_id)

    table = Table(title=f"Memory stats - {section_id[:8]}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="bold")
    for key, value in data.items():
        if isinstance(value, float):
            value = f"{value:.3f}"
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@app.command("calibration")
def calibration(ctx: typer.Context) -> None:
    """Personal calibration factors per difficulty class."""
    context = _open_context(ctx)
    data = context.calibration.get_calibration_stats()

    status = "[green]calibrated[/green]" if data["is_calibrated"] else "[yellow]calibrating[/yellow]"
    console.print(f"Sessions: {data['total_sessions']} ({status})")

    table = Table()
    table.add_column("Difficulty")
    table.add_column("Factor", justify="right")
    table.add_column("Effective", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Sessions", justify="right")
    for key, entry in sorted(data["difficulty_adjustments"].items()):
        table.add_row(
            key,
            f"{entry['factor']:.3f}",
            f"{context.calibration.get_adjustment_factor(key):.3f}",
            f"{entry['confidence']:.0%}",
            str(entry["sessions"]),
        )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """CLI entry point."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB")

    app()


if __name__ == "__main__":
    run()
