"""CLI commands for inspecting and validating stealthrun settings."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from urllib.parse import urlparse

import typer
from rich.console import Console

from stealthrun.settings.config import Settings

settings_app = typer.Typer(help="Inspect and validate stealthrun configuration.")
console = Console()

_PROXY_SCHEMES = ("http", "https", "socks5")
_ROTATION_STRATEGIES = ("round_robin", "random")


def config_issues(settings: Settings) -> list[str]:
    """Cross-field problems that the per-field validators cannot see."""
    issues: list[str] = []
    retry = settings.retry
    if retry.strategy != "immediate" and retry.max_delay_sec < retry.base_delay_sec:
        issues.append(
            f"retry.max_delay_sec ({retry.max_delay_sec}) is below retry.base_delay_sec ({retry.base_delay_sec})"
        )
    if settings.stealth.rotation_strategy not in _ROTATION_STRATEGIES:
        issues.append(
            f"stealth.rotation_strategy must be one of {', '.join(_ROTATION_STRATEGIES)}, "
            f"got {settings.stealth.rotation_strategy!r}"
        )
    for url in settings.stealth.proxy_urls:
        parsed = urlparse(url)
        if parsed.scheme not in _PROXY_SCHEMES or not parsed.hostname:
            issues.append(f"stealth.proxy_urls: {url!r} is not an http, https or socks5 proxy URL")
    video_dir = settings.browser.record_video_dir
    if video_dir and Path(video_dir).is_file():
        issues.append(f"browser.record_video_dir points at a file: {video_dir}")
    return issues


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings."""
    from stealthrun.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from stealthrun.browser.stealth import options_for_level
    from stealthrun.runner.retry import create_retry_strategy
    from stealthrun.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    issues = config_issues(settings)
    if issues:
        console.print(f"[red]✗[/red] Settings validation failed: {len(issues)} issue(s)")
        for issue in issues:
            console.print(f"  - {issue}")
        raise typer.Exit(code=1)

    preset = options_for_level(settings.stealth.level)
    enabled = [name for name, on in asdict(preset).items() if on]
    strategy = create_retry_strategy(
        settings.retry.strategy,
        base_delay=settings.retry.base_delay_sec,
        max_delay=settings.retry.max_delay_sec,
    )
    delays = ", ".join(f"{strategy.delay(n):g}s" for n in range(1, settings.compiler.default_retry_count + 1))

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Stealth level: {settings.stealth.level} ({', '.join(enabled)})")
    console.print(f"  Proxies: {len(settings.stealth.proxy_urls)} ({settings.stealth.rotation_strategy})")
    console.print(f"  Headless: {settings.browser.headless}")
    console.print(f"  Retry delays ({settings.retry.strategy}): {delays or 'none'}")
