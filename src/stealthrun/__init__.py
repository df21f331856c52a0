"""stealthrun — compile browser automation scripts and run them through a stealth Playwright engine."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("stealthrun")
except Exception:
    __version__ = "0.0.0"
