"""CLI commands for compiling and running automation scripts."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

_STATUS_STYLE = {
    "success": "green",
    "skipped": "yellow",
    "failed": "red",
    "pending": "dim",
    "running": "cyan",
}


def _read_script(path: Path) -> str:
    from stealthrun.compiler import load_script

    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(code=1)
    return load_script(path)


# ---------------------------------------------------------------------------
# stealthrun compile
# ---------------------------------------------------------------------------


def compile_command(
    script: Path = typer.Argument(..., help="Automation script file."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output compiled steps as JSON."),
) -> None:
    """Compile a script and show the recognised steps."""
    from stealthrun.compiler import ScriptCompiler
    from stealthrun.settings import get_settings

    text = _read_script(script)
    compiler = ScriptCompiler(default_retry_count=get_settings().compiler.default_retry_count)
    steps = compiler.compile(text)

    if json_output:
        payload = {
            "steps": [s.model_dump(mode="json") for s in steps],
            "warnings": [w.model_dump(mode="json") for w in compiler.warnings],
        }
        console.print_json(json.dumps(payload, indent=2, default=str))
        return

    table = Table(title=f"Steps — {script.name}")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Params")
    table.add_column("Retries", justify="right")
    table.add_column("Ignore errors")

    for step in steps:
        params = step.params.model_dump(mode="json", exclude={"action"})
        table.add_row(
            str(step.ordinal),
            step.type.value,
            json.dumps(params, ensure_ascii=False),
            str(step.error_policy.retry_count),
            "yes" if step.error_policy.ignore_errors else "",
        )
    console.print(table)

    for warning in compiler.warnings:
        console.print(f"[yellow]⚠[/yellow] line {warning.line_number}: {warning.message}")


# ---------------------------------------------------------------------------
# stealthrun run
# ---------------------------------------------------------------------------


def run_command(
    scripts: List[Path] = typer.Argument(..., help="One or more automation script files."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the session JSON to this file."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for profile selection and human timing."),
    concurrency: int = typer.Option(1, "--concurrency", "-c", min=1, max=10, help="Max concurrent sessions."),
    headful: bool = typer.Option(False, "--headful", help="Show the browser window."),
    events: bool = typer.Option(False, "--events", help="Emit JSONL events to stderr."),
) -> None:
    """Run scripts in stealth browser sessions and report per-step results."""
    from stealthrun.runner import EventBus, JsonlSink, ScriptJob, run_many
    from stealthrun.settings import get_settings

    settings = get_settings()
    if headful:
        settings = settings.model_copy(
            update={"browser": settings.browser.model_copy(update={"headless": False})}
        )

    jobs: list[ScriptJob] = []
    for index, path in enumerate(scripts):
        bus = None
        if events:
            bus = EventBus()
            bus.add_sink(JsonlSink(sys.stderr))
        jobs.append(
            ScriptJob(
                script_text=_read_script(path),
                task_name=path.stem,
                seed=None if seed is None else seed + index,
                event_bus=bus,
            )
        )

    console.print(Panel(f"[bold]Running:[/bold] {', '.join(p.name for p in scripts)}", title="stealthrun", border_style="blue"))
    sessions = asyncio.run(run_many(jobs, concurrency=concurrency, settings=settings))

    for session in sessions:
        table = Table(title=f"{session.task_name} — {session.status.value}")
        table.add_column("#", justify="right")
        table.add_column("Type", style="cyan")
        table.add_column("Status")
        table.add_column("Retries", justify="right")
        table.add_column("Duration", justify="right", style="dim")
        table.add_column("Error", max_width=60)
        for step in session.steps:
            style = _STATUS_STYLE.get(step.status.value, "")
            table.add_row(
                str(step.ordinal),
                step.type.value,
                f"[{style}]{step.status.value}[/{style}]" if style else step.status.value,
                str(step.retry_count),
                f"{step.duration_ms}ms" if step.duration_ms is not None else "",
                step.error or "",
            )
        console.print(table)
        console.print(
            f"  {session.completed_steps}/{session.total_steps} completed, {session.failed_steps} failed"
        )

    if output:
        if len(sessions) == 1:
            output.write_text(sessions[0].to_json(), encoding="utf-8")
        else:
            payload = [s.model_dump(mode="json") for s in sessions]
            output.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        console.print(f"Session saved to: {output}")

    if any(s.status.value != "completed" for s in sessions):
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# stealthrun profile
# ---------------------------------------------------------------------------


def profile_command(
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible selection."),
    locale: Optional[str] = typer.Option(None, "--locale", help="Override the locale."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Override the timezone."),
) -> None:
    """Draw a browser session profile from the pool."""
    from stealthrun.browser.profiles import generate_profile
    from stealthrun.models.profile import ProfileOverrides

    profile = generate_profile(ProfileOverrides(locale=locale, timezone=timezone), seed=seed)
    payload = profile.model_dump(mode="json")
    payload["languages"] = profile.languages
    payload["platform"] = profile.platform
    console.print_json(json.dumps(payload, indent=2))
