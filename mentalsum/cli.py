"""
Mental Sum CLI - practice mental arithmetic from the terminal.

Usage:
    mentalsum users create Ada        # Create a user (first user becomes current)
    mentalsum users list              # List users
    mentalsum practice                # Start a general session
    mentalsum practice -f AdditionDoubles   # Focused session on one strategy
    mentalsum practice --again        # Repeat the last session type
    mentalsum stats                   # Show progress
    mentalsum review                  # Review mistakes and weak strategies
    mentalsum export data.json        # Export all data
"""

from __future__ import annotations

import random
import sys
import time
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from mentalsum import __version__
from mentalsum.config import get_settings
from mentalsum.core.exceptions import MentalSumError, ValidationError
from mentalsum.core.models import SessionType, User
from mentalsum.core.performance import PerformanceCategory, session_stars
from mentalsum.core.strategies import STRATEGIES, Operation, concise_hint
from mentalsum.engine.problem_engine import ProblemEngine
from mentalsum.session.controller import SessionController, SessionPhase
from mentalsum.session.statistics import incorrect_problems, weak_strategies
from mentalsum.storage.manager import StorageManager

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="mentalsum",
    help="🧮 Mental Sum - mental arithmetic trainer",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)
users_app = typer.Typer(help="Manage users", no_args_is_help=True)
app.add_typer(users_app, name="users")

console = Console()

CATEGORY_STYLES = {
    PerformanceCategory.UNTRIED: "dim",
    PerformanceCategory.WEAK: "red",
    PerformanceCategory.GOOD: "yellow",
    PerformanceCategory.MASTERED: "green",
}


def get_storage() -> StorageManager:
    """Storage manager configured from settings."""
    return StorageManager.from_settings(get_settings())


def get_engine() -> ProblemEngine:
    seed = get_settings().random_seed
    return ProblemEngine(random.Random(seed) if seed is not None else None)


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]✗ {escape(str(error))}[/]")
    return typer.Exit(1)


def _resolve_user(storage: StorageManager, ref: str | None) -> User:
    """Find a user by id or name, defaulting to the current user."""
    if ref is None:
        user = storage.get_current_user()
        if user is None:
            raise ValidationError("No current user. Create one with 'mentalsum users create <name>'")
        return user

    user = storage.get_user_by_id(ref)
    if user is not None:
        return user
    matches = [u for u in storage.list_users() if u.name.lower() == ref.lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"Several users are named '{ref}'; use the id instead")
    raise ValidationError(f"No user matches '{ref}'")


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB")


# =============================================================================
# User Commands
# =============================================================================


@users_app.command("list")
def users_list() -> None:
    """List all users."""
    storage = get_storage()
    data = storage.initialize()

    if not data.users:
        console.print("[yellow]No users yet.[/]")
        console.print("[dim]Use 'mentalsum users create <name>' to add one.[/]")
        return

    table = Table(title="👤 Users")
    table.add_column("", width=1)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Id", style="dim")
    table.add_column("Sessions", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Last active", style="dim")

    for user in data.users:
        stats = user.statistics
        table.add_row(
            "★" if user.id == data.current_user_id else "",
            user.name,
            user.id,
            str(stats.total_sessions_completed),
            f"{stats.average_accuracy:.0f}%",
            user.last_active_at.strftime("%Y-%m-%d"),
        )

    console.print(table)


@users_app.command("create")
def users_create(
    name: Annotated[str, typer.Argument(help="Display name")],
    select: Annotated[
        bool, typer.Option("--select", "-s", help="Make the new user current")
    ] = False,
) -> None:
    """Create a user."""
    storage = get_storage()
    try:
        user = storage.create_user(name)
        if select:
            storage.set_current_user(user.id)
    except MentalSumError as e:
        raise _fail(e)

    console.print(f"[green]✓ Created {user.name}[/] [dim]({user.id})[/]")


@users_app.command("select")
def users_select(
    user_ref: Annotated[str, typer.Argument(help="User id or name")],
) -> None:
    """Set the current user."""
    storage = get_storage()
    try:
        user = storage.set_current_user(_resolve_user(storage, user_ref).id)
    except MentalSumError as e:
        raise _fail(e)

    console.print(f"[green]✓ Current user: {user.name}[/]")


@users_app.command("rename")
def users_rename(
    user_ref: Annotated[str, typer.Argument(help="User id or name")],
    new_name: Annotated[str, typer.Argument(help="New display name")],
) -> None:
    """Rename a user."""
    storage = get_storage()
    try:
        user = storage.update_user(_resolve_user(storage, user_ref).id, {"name": new_name})
    except MentalSumError as e:
        raise _fail(e)

    console.print(f"[green]✓ Renamed to {user.name}[/]")


@users_app.command("delete")
def users_delete(
    user_ref: Annotated[str, typer.Argument(help="User id or name")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete a user and all of their sessions."""
    storage = get_storage()
    try:
        user = _resolve_user(storage, user_ref)
        if not yes and not Confirm.ask(f"Delete {user.name} and all their sessions?"):
            raise typer.Exit(0)
        storage.delete_user(user.id)
    except MentalSumError as e:
        raise _fail(e)

    console.print(f"[green]✓ Deleted {user.name}[/]")


# =============================================================================
# Settings
# =============================================================================


@app.command("settings")
def settings_command(
    length: Annotated[
        int | None, typer.Option("--length", "-n", help="Problems per session")
    ] = None,
    max_number: Annotated[
        int | None, typer.Option("--max", "-m", help="Largest operand")
    ] = None,
    time_limit: Annotated[
        int | None, typer.Option("--time-limit", "-t", help="Seconds per problem")
    ] = None,
    operations: Annotated[
        str | None,
        typer.Option("--ops", help="Comma-separated operations, e.g. addition,subtraction"),
    ] = None,
    sound: Annotated[
        bool | None, typer.Option("--sound/--no-sound", help="Audio feedback")
    ] = None,
    user_ref: Annotated[
        str | None, typer.Option("--user", "-u", help="User id or name")
    ] = None,
) -> None:
    """Show or change practice preferences."""
    storage = get_storage()
    try:
        user = _resolve_user(storage, user_ref)

        patch: dict = {}
        if length is not None:
            patch["session_length"] = length
        if max_number is not None:
            patch["max_number"] = max_number
        if time_limit is not None:
            patch["time_limit"] = time_limit
        if sound is not None:
            patch["enable_sound"] = sound
        if operations is not None:
            try:
                chosen = {Operation(op.strip().lower()) for op in operations.split(",") if op.strip()}
            except ValueError as e:
                raise ValidationError(str(e)) from e
            if not chosen:
                raise ValidationError("At least one operation must be enabled")
            patch["enabled_operations"] = {op.value: op in chosen for op in Operation}

        if patch:
            user = storage.update_user(user.id, {"preferences": patch})
    except MentalSumError as e:
        raise _fail(e)

    prefs = user.preferences
    table = Table(title=f"⚙️  Preferences for {user.name}", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Operations", ", ".join(op.value for op in prefs.enabled_operations.enabled()) or "-")
    table.add_row("Session length", str(prefs.session_length))
    table.add_row("Max number", str(prefs.max_number))
    table.add_row("Time limit", f"{prefs.time_limit}s")
    table.add_row("Strategy hints", "on" if prefs.show_strategies else "off")
    table.add_row("Sound", "on" if prefs.enable_sound else "off")
    console.print(table)


# =============================================================================
# Practice
# =============================================================================


def _remember_last_session(controller: SessionController, storage: StorageManager, user: User) -> None:
    """Seed the controller's last session type from the user's most recent session."""
    sessions = storage.get_sessions_by_user(user.id)
    if not sessions:
        return
    last = max(sessions, key=lambda s: s.start_time)
    controller.last_session_type = last.session_type
    controller.last_focused_strategy_id = last.focused_strategy_id


def _run_problems(controller: SessionController, show_hints: bool, time_limit: int) -> None:
    """Ask each problem until the session completes or the user quits."""
    while controller.phase == SessionPhase.ACTIVE:
        problem = controller.current_problem
        if problem is None:
            controller.end_session()
            break

        progress = controller.progress()
        console.print(f"\n[dim]{progress.completed + 1}/{progress.total}[/]  [bold]{problem.display} = ?[/]")
        if show_hints:
            console.print(f"[dim]💡 {concise_hint(problem)}[/]")

        started = time.monotonic()
        try:
            raw = Prompt.ask("Answer [dim](q to stop)[/]")
        except (EOFError, KeyboardInterrupt):
            console.print("\n[yellow]Input closed, ending session.[/]")
            controller.end_session()
            break
        elapsed = time.monotonic() - started

        if raw.strip().lower() in ("q", "quit"):
            controller.end_session()
            break

        try:
            answer = int(raw.strip())
        except ValueError:
            console.print("[yellow]Please enter a whole number.[/]")
            continue

        if elapsed > time_limit:
            controller.record_timeout()
            console.print(f"[red]⏱  Too slow! The answer was {problem.correct_answer}.[/]")
            continue

        answered = controller.submit_answer(answer, time_spent=elapsed)
        if answered.is_correct:
            console.print(f"[green]✓ Correct[/] [dim]({elapsed:.1f}s)[/]")
        else:
            console.print(f"[red]✗ {problem.correct_answer}[/]")


def _print_results(controller: SessionController) -> None:
    session = controller.session
    if session is None:
        return

    answered = len(session.answered_problems)
    stars = session_stars(session.accuracy_percent)
    body = (
        f"Correct: [green]{session.total_correct}[/]   Wrong: [red]{session.total_wrong}[/]\n"
        f"Accuracy: {session.accuracy_percent:.0f}%   Avg time: {session.average_time:.1f}s\n"
        f"{'⭐' * stars}"
    )
    if answered < len(session.problems):
        body += f"\n[dim]Stopped after {answered} of {len(session.problems)} problems[/]"
    console.print(Panel(body, title="Session complete", border_style="cyan"))


@app.command()
def practice(
    focus: Annotated[
        str | None, typer.Option("--focus", "-f", help="Practice a single strategy")
    ] = None,
    again: Annotated[
        bool, typer.Option("--again", "-a", help="Repeat the last session type")
    ] = False,
    user_ref: Annotated[
        str | None, typer.Option("--user", "-u", help="User id or name")
    ] = None,
) -> None:
    """
    Start a practice session.

    Examples:
        mentalsum practice
        mentalsum practice --focus AdditionBridgingTo10s
        mentalsum practice --again
    """
    storage = get_storage()
    controller = SessionController(storage, engine=get_engine())

    try:
        user = _resolve_user(storage, user_ref)
        if again:
            _remember_last_session(controller, storage, user)
            controller.start_same_type_session()
        else:
            controller.set_practice_intent(True)
            if focus:
                controller.set_session_type_intent(SessionType.FOCUSED)
                controller.set_focused_strategy(focus)
            else:
                controller.set_session_type_intent(SessionType.GENERAL)

        session = controller.start_session(user.id)
        title = "General practice"
        if session.focused_strategy_id is not None:
            title = f"Focused: {STRATEGIES[session.focused_strategy_id].name}"
        console.print(
            Panel(
                f"[bold cyan]{title}[/]\nUser: {user.name}\nProblems: {len(session.problems)}",
                title="🧮",
                border_style="cyan",
            )
        )

        _run_problems(controller, user.preferences.show_strategies, user.preferences.time_limit)
    except MentalSumError as e:
        raise _fail(e)

    _print_results(controller)
    controller.clear_session()


# =============================================================================
# Progress
# =============================================================================


@app.command()
def stats(
    user_ref: Annotated[
        str | None, typer.Option("--user", "-u", help="User id or name")
    ] = None,
) -> None:
    """Show overall statistics and per-strategy progress."""
    storage = get_storage()
    try:
        user = _resolve_user(storage, user_ref)
    except MentalSumError as e:
        raise _fail(e)

    s = user.statistics
    console.print(
        Panel(
            f"Problems: {s.total_problems_attempted}   Correct: {s.total_correct_answers}\n"
            f"Accuracy: {s.average_accuracy:.1f}%   Avg time: {s.average_response_time:.1f}s\n"
            f"Sessions: {s.total_sessions_completed}   "
            f"Streak: {s.streak_current} (best {s.streak_best})",
            title=f"📊 {user.name}",
            border_style="cyan",
        )
    )

    table = Table(title="Strategies")
    table.add_column("Strategy", style="cyan")
    table.add_column("Operation", style="dim")
    table.add_column("Correct", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Status")

    for strategy_id, metrics in s.strategy_performance.items():
        category = metrics.category
        table.add_row(
            STRATEGIES[strategy_id].name,
            strategy_id.operation.value,
            str(metrics.correct),
            str(metrics.total_attempts),
            f"{metrics.accuracy * 100:.0f}%" if metrics.total_attempts else "-",
            f"[{CATEGORY_STYLES[category]}]{category.value}[/]",
        )

    console.print(table)


@app.command()
def review(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Mistakes to show")] = 10,
    user_ref: Annotated[
        str | None, typer.Option("--user", "-u", help="User id or name")
    ] = None,
) -> None:
    """Review recent mistakes and strategies that need work."""
    storage = get_storage()
    try:
        user = _resolve_user(storage, user_ref)
    except MentalSumError as e:
        raise _fail(e)

    mistakes = incorrect_problems(user.statistics, limit=limit)
    if not mistakes:
        console.print("[green]No mistakes to review. 🎉[/]")
    else:
        table = Table(title="❌ Recent mistakes")
        table.add_column("Problem", style="bold")
        table.add_column("Your answer", justify="right", style="red")
        table.add_column("Correct", justify="right", style="green")
        table.add_column("Strategy", style="cyan")
        for problem in mistakes:
            table.add_row(
                problem.display,
                "timeout" if problem.user_answer == -1 else str(problem.user_answer),
                str(problem.correct_answer),
                STRATEGIES[problem.intended_strategy].name,
            )
        console.print(table)

    weak = weak_strategies(user.statistics)
    if weak:
        console.print("\n[bold]Strategies to focus on:[/]")
        for strategy_id in weak:
            console.print(f"  • {STRATEGIES[strategy_id].name} [dim](mentalsum practice -f {strategy_id.value})[/]")


@app.command()
def strategies(
    operation: Annotated[
        str | None, typer.Option("--operation", "-o", help="Filter by operation")
    ] = None,
) -> None:
    """List the mental math strategies."""
    table = Table(title="🧠 Strategies")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Example", style="dim")

    for strategy_id, strategy in STRATEGIES.items():
        if operation and strategy_id.operation.value != operation.lower():
            continue
        table.add_row(strategy_id.value, strategy.name, strategy.example)

    console.print(table)


# =============================================================================
# Data Management
# =============================================================================


@app.command("export")
def export_command(
    output: Annotated[
        Path | None, typer.Argument(help="File to write (stdout if omitted)")
    ] = None,
) -> None:
    """Export all data as JSON."""
    payload = get_storage().export_data()
    if output is None:
        print(payload)
        return
    output.write_text(payload, encoding="utf-8")
    console.print(f"[green]✓ Exported to {output}[/]")


@app.command("import")
def import_command(
    source: Annotated[Path, typer.Argument(help="JSON file from 'mentalsum export'")],
) -> None:
    """Replace all data with an exported file."""
    if not source.exists():
        console.print(f"[red]File not found: {source}[/]")
        raise typer.Exit(1)

    try:
        try:
            raw = source.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"{source} is not UTF-8 text: {e.reason}") from e
        data = get_storage().import_data(raw)
    except MentalSumError as e:
        raise _fail(e)

    console.print(f"[green]✓ Imported {len(data.users)} users and {len(data.sessions)} sessions[/]")


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete all stored data."""
    if not yes and not Confirm.ask("Delete ALL users and sessions?"):
        raise typer.Exit(0)
    get_storage().clear_all_data()
    console.print("[green]✓ All data cleared[/]")


@app.command()
def version() -> None:
    """Show version and storage location."""
    settings = get_settings()
    storage = get_storage()
    console.print(f"mentalsum {__version__}")
    console.print(f"[dim]Data: {settings.storage_path} ({storage.storage_size()} bytes)[/]")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
