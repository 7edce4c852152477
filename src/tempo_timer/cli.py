#!/usr/bin/env python3
"""Tempo workout timer CLI.

Usage:
    tempo settings
    tempo adjust rest_time -- -5
    tempo run
    tempo history --limit 5
    tempo achievements --unlocked
    tempo level
    tempo export backup.json
    tempo import backup.json
    tempo reset-progress --yes
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tempo_timer import __version__
from tempo_timer.achievements import AchievementEvaluator
from tempo_timer.config import TimerConfig
from tempo_timer.experience import ExperienceCalculator, XPGain
from tempo_timer.models import Phase, WorkoutSession
from tempo_timer.scheduler import APSchedulerDriver
from tempo_timer.storage import SqliteBackend, WorkoutStore
from tempo_timer.workout import (
    CompletionResult,
    TransitionRejected,
    WorkoutController,
    current_rep,
    progress_percent,
    remaining_time,
    total_duration,
)
from tempo_timer.workout.controller import ADJUSTABLE_FIELDS

logger = logging.getLogger("tempo_timer.cli")

console = Console()

PHASE_STYLES = {
    Phase.SETUP: ("Ready", "white"),
    Phase.TRANSITION: ("...", "dim"),
    Phase.PREPARE: ("Get Ready", "cyan"),
    Phase.COUNTDOWN: ("Stretch", "yellow"),
    Phase.WORK: ("Work", "green"),
    Phase.REST: ("Rest", "blue"),
    Phase.COMPLETE: ("Complete", "magenta"),
}

RARITY_STYLES = {
    "common": "white",
    "rare": "cyan",
    "epic": "magenta",
    "legendary": "yellow",
}


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s | %(name)s | %(message)s",
        stream=sys.stderr,
        force=True,
    )


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    if minutes >= 60:
        hours, minutes = divmod(minutes, 60)
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_timestamp(ms: Optional[int]) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


# ---- Rendering ----

def render_session(session: WorkoutSession, message: str = "") -> Panel:
    label, style = PHASE_STYLES[session.phase]
    if session.is_paused:
        label = f"{label} (paused)"

    grid = Table.grid(padding=(0, 2))
    grid.add_column(justify="right", style="dim")
    grid.add_column()
    grid.add_row("Time", Text(format_clock(session.time_remaining), style=f"bold {style}"))
    grid.add_row("Set", f"{session.current_set}/{session.total_sets}")
    if session.phase == Phase.WORK:
        grid.add_row("Rep", f"{current_rep(session)}/{session.settings.reps_per_set}")
    grid.add_row("Remaining", format_clock(remaining_time(session)))
    grid.add_row("Progress", f"{progress_percent(session):.0f}%")

    keys = "[p] pause  [s] skip  [r] reset  [q] quit"
    if session.phase == Phase.PREPARE:
        keys = "[c] start stretching  " + keys
    parts = [grid, Text(keys, style="dim")]
    if message:
        parts.append(Text(message, style="yellow"))
    return Panel(Group(*parts), title=f"[bold {style}]{label}[/]", border_style=style, box=box.ROUNDED)


def _print_gains(gains: list[XPGain]) -> None:
    for gain in gains:
        line = f"  +{gain.amount} XP  {gain.label}"
        if gain.level_up:
            line += f"  [bold yellow]Level {gain.new_level}![/]"
        console.print(line)


def print_completion(result: CompletionResult) -> None:
    facts = result.facts
    console.print(Panel.fit("[bold magenta]Workout complete[/]", border_style="magenta"))
    if facts is not None:
        console.print(f"  {facts.sets} sets, {facts.reps} reps, {format_clock(facts.time_seconds)} active")
    for view in result.unlocked:
        style = RARITY_STYLES.get(view.rule.rarity.value, "white")
        console.print(f"  {view.rule.icon} [bold {style}]{view.rule.title}[/] unlocked")
    for view in result.progressed:
        note = f" ({view.session_note})" if view.session_note else ""
        console.print(f"  [dim]{view.rule.title}: {view.state.progress}/{view.rule.max_progress}{note}[/]")
    _print_gains(result.xp_gains)


# ---- Live session ----

class _TerminalKeys:
    """Single-key input from stdin on the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, on_key):
        self.loop = loop
        self.on_key = on_key
        self.fd = sys.stdin.fileno()
        self._saved = None

    def __enter__(self):
        if sys.stdin.isatty():
            import termios
            import tty

            self._saved = termios.tcgetattr(self.fd)
            tty.setcbreak(self.fd)
        self.loop.add_reader(self.fd, self._read)
        return self

    def __exit__(self, *exc):
        self.loop.remove_reader(self.fd)
        if self._saved is not None:
            import termios

            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
        return False

    def _read(self) -> None:
        ch = os.read(self.fd, 1).decode(errors="ignore")
        if not ch:
            # stdin closed
            self.on_key("q")
            return
        self.on_key(ch.lower())


def open_controller(store: WorkoutStore, driver: APSchedulerDriver, config: TimerConfig) -> WorkoutController:
    """Controller on the saved session, or on a fresh one if the last workout finished."""
    controller = WorkoutController(store, driver, config)
    if controller.phase != Phase.COMPLETE:
        return controller
    if controller.last_completion is not None:
        # completed before its results were shown
        print_completion(controller.last_completion)
    controller.shutdown()
    store.clear_session()
    return WorkoutController(store, driver, config)


async def run_workout(store: WorkoutStore, config: TimerConfig, auto_continue: bool) -> Optional[CompletionResult]:
    loop = asyncio.get_running_loop()
    driver = APSchedulerDriver()
    driver.start()

    controller = open_controller(store, driver, config)
    finished = asyncio.Event()
    state = {"message": "", "result": None}

    with Live(render_session(controller.session), console=console, refresh_per_second=4) as live:

        def refresh(session: Optional[WorkoutSession] = None) -> None:
            live.update(render_session(session or controller.session, state["message"]))

        def on_phase_change(previous: Phase, session: WorkoutSession) -> None:
            state["message"] = ""
            if session.phase == Phase.PREPARE and auto_continue:
                controller.continue_to_stretch()
                return
            if session.phase == Phase.SETUP and previous == Phase.TRANSITION:
                state["message"] = "Workout reset"
                finished.set()
            refresh(session)

        def on_complete(result: CompletionResult) -> None:
            state["result"] = result
            finished.set()

        def on_key(key: str) -> None:
            try:
                if key == "p":
                    controller.toggle_pause()
                elif key == "s":
                    controller.skip_phase()
                elif key == "r":
                    controller.reset_workout()
                elif key in ("c", "\n", " "):
                    controller.continue_to_stretch()
                elif key == "q":
                    finished.set()
                    return
                else:
                    return
                state["message"] = ""
            except TransitionRejected as e:
                state["message"] = f"Not now: {e.reason.replace('_', ' ')}"
            refresh()

        controller.set_on_tick(refresh)
        controller.set_on_rep(refresh)
        controller.set_on_phase_change(on_phase_change)
        controller.set_on_complete(on_complete)

        if controller.phase == Phase.SETUP:
            controller.start_workout()
        refresh()

        with _TerminalKeys(loop, on_key):
            try:
                await finished.wait()
            finally:
                controller.shutdown()
                driver.shutdown()

    return state["result"]


# ---- Commands ----

@click.group()
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="SQLite database path (default: $TEMPO_DB or ~/.tempo/tempo.db)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="tempo")
@click.pass_context
def cli(ctx, db_path, verbose):
    """Tempo - interval workout timer."""
    setup_logging(verbose)
    try:
        config = TimerConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e))
    if db_path is not None:
        config = dataclasses.replace(config, db_path=db_path)

    backend = SqliteBackend(config.db_path)
    backend.init_tables()
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["store"] = WorkoutStore(backend, history_limit=config.history_limit)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def settings(ctx, as_json):
    """Show the saved workout settings."""
    store: WorkoutStore = ctx.obj["store"]
    config: TimerConfig = ctx.obj["config"]
    current = store.load_workout_settings()
    if as_json:
        click.echo(json.dumps(current.model_dump(), indent=2))
        return

    table = Table(box=box.SIMPLE, title="Workout settings")
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    table.add_column("Range", style="dim")
    for name in ("total_sets", *ADJUSTABLE_FIELDS):
        bounds = config.bounds_for(name)
        table.add_row(name, str(getattr(current, name)), f"{bounds.minimum}-{bounds.maximum}")
    console.print(table)
    console.print(f"Planned duration: {format_clock(total_duration(current, current.total_sets))}")


@cli.command()
@click.argument("field", type=click.Choice(["total_sets", *ADJUSTABLE_FIELDS]))
@click.argument("delta", type=int)
@click.pass_context
def adjust(ctx, field, delta):
    """Change a setting by DELTA (clamped to its allowed range)."""
    store: WorkoutStore = ctx.obj["store"]
    config: TimerConfig = ctx.obj["config"]
    driver = APSchedulerDriver()
    controller = open_controller(store, driver, config)
    try:
        if field == "total_sets":
            value = controller.adjust_sets(delta)
        else:
            value = controller.adjust_time(field, delta)
    except TransitionRejected:
        raise click.ClickException("A workout is in progress; finish it or reset it before changing settings.")
    finally:
        controller.shutdown()
    click.echo(f"{field} = {value}")


@cli.command()
@click.option("--auto-continue", is_flag=True, help="Start stretching without waiting on the prepare screen")
@click.pass_context
def run(ctx, auto_continue):
    """Run a workout in the terminal."""
    store: WorkoutStore = ctx.obj["store"]
    config: TimerConfig = ctx.obj["config"]
    try:
        result = asyncio.run(run_workout(store, config, auto_continue))
    except KeyboardInterrupt:
        click.echo("\nStopped. Run `tempo run` again to resume.")
        return
    if result is not None:
        print_completion(result)


@cli.command()
@click.option("--limit", "-n", default=10, show_default=True, help="Number of entries to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx, limit, as_json):
    """List completed workouts, newest first."""
    store: WorkoutStore = ctx.obj["store"]
    entries = store.load_history()[:limit]
    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return
    if not entries:
        click.echo("No workouts yet.")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Date")
    table.add_column("Sets", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("Active", justify="right")
    table.add_column("Paused", justify="right")
    table.add_column("Synced", justify="center")
    for entry in entries:
        stats = entry.statistics
        table.add_row(
            format_timestamp(entry.date),
            str(entry.total_sets),
            str(stats.total_reps_completed),
            format_clock(stats.active_time),
            format_clock(stats.total_time_paused),
            "yes" if entry.server_synced else "no",
        )
    console.print(table)


@cli.command()
@click.option("--unlocked", "unlocked_only", is_flag=True, help="Only show unlocked achievements")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def achievements(ctx, unlocked_only, as_json):
    """Show achievements and progress."""
    store: WorkoutStore = ctx.obj["store"]
    config: TimerConfig = ctx.obj["config"]
    evaluator = AchievementEvaluator(store, streak_reset_days=config.streak_reset_days)
    catalog = evaluator.catalog()
    unlocked_views = [v for v in catalog if v.state.unlocked]
    views = unlocked_views if unlocked_only else catalog
    if as_json:
        click.echo(json.dumps([v.to_dict() for v in views], indent=2))
        return

    table = Table(box=box.SIMPLE, title=f"Achievements ({len(unlocked_views)}/{len(catalog)})")
    table.add_column("")
    table.add_column("Achievement")
    table.add_column("Rarity")
    table.add_column("Progress", justify="right")
    table.add_column("Unlocked")
    for view in views:
        rule, st = view.rule, view.state
        progress = f"{st.progress}/{rule.max_progress}" if rule.tracks_progress else ""
        style = RARITY_STYLES.get(rule.rarity.value, "white") if st.unlocked else "dim"
        table.add_row(
            rule.icon,
            Text(rule.title, style=style),
            rule.rarity.value,
            progress,
            format_timestamp(st.unlocked_at) if st.unlocked else "",
        )
    console.print(table)


@cli.command()
@click.pass_context
def level(ctx):
    """Show experience level and progress."""
    store: WorkoutStore = ctx.obj["store"]
    calculator = ExperienceCalculator(store)
    info = calculator.level_info()
    state = calculator.state
    console.print(f"Level [bold]{info.level}[/] - {info.title}")
    console.print(f"Total XP: {state.total_xp}")
    console.print(f"Progress: {info.xp_for_this_level}/{info.xp_required} ({info.progress_percent:.0f}%)")
    console.print(f"XP to next level: {info.xp_to_next}")


@cli.command(name="export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path), required=False)
@click.pass_context
def export_cmd(ctx, output):
    """Export settings, history and progress as JSON."""
    store: WorkoutStore = ctx.obj["store"]
    payload = store.export_data()
    if output is None:
        click.echo(payload)
        return
    output.write_text(payload)
    click.echo(f"Exported to {output}")


@cli.command(name="import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_cmd(ctx, source):
    """Restore a backup written by `tempo export`."""
    store: WorkoutStore = ctx.obj["store"]
    try:
        store.import_data(source.read_text())
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Imported {source}")


@cli.command(name="reset-progress")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset_progress(ctx, yes):
    """Clear history, achievements and experience."""
    if not yes:
        click.confirm("This erases all workout history, achievements and XP. Continue?", abort=True)
    store: WorkoutStore = ctx.obj["store"]
    config: TimerConfig = ctx.obj["config"]
    AchievementEvaluator(store, streak_reset_days=config.streak_reset_days).reset()
    ExperienceCalculator(store).reset()
    store.clear_history()
    click.echo("Progress reset.")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
