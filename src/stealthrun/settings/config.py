"""Configuration loader for stealthrun using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (STEALTHRUN_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("STEALTHRUN_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "STEALTHRUN_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="STEALTHRUN_BROWSER__")

    headless: bool = True
    timeout_ms: int = Field(default=30_000, gt=0)
    sandbox: bool = False
    record_video_dir: str = ""


class StealthSettings(BaseSettings):
    """Anti-detection configuration."""

    model_config = SettingsConfigDict(env_prefix="STEALTHRUN_STEALTH__")

    level: Literal["basic", "advanced", "maximum"] = "advanced"
    proxy_urls: list[str] = Field(default_factory=list)
    rotation_strategy: str = "round_robin"  # round_robin | random


class TimingSettings(BaseSettings):
    """Human-pacing configuration.

    ``scale`` multiplies every human-timing delay; ``0`` disables pacing
    entirely (useful for local smoke runs against fixture pages).
    """

    model_config = SettingsConfigDict(env_prefix="STEALTHRUN_TIMING__")

    scale: float = Field(default=1.0, ge=0.0)


class RetrySettings(BaseSettings):
    """Inter-attempt pacing for failed steps."""

    model_config = SettingsConfigDict(env_prefix="STEALTHRUN_RETRY__")

    strategy: Literal["immediate", "exponential", "linear", "adaptive"] = "exponential"
    base_delay_sec: float = Field(default=1.0, ge=0.0)
    max_delay_sec: float = Field(default=30.0, ge=0.0)


class MonitorSettings(BaseSettings):
    """Session monitor policy."""

    model_config = SettingsConfigDict(env_prefix="STEALTHRUN_MONITOR__")

    abort_on_failure: bool = True
    stop_grace_sec: float = Field(default=5.0, ge=0.0)


class CompilerSettings(BaseSettings):
    """Script compiler defaults."""

    model_config = SettingsConfigDict(env_prefix="STEALTHRUN_COMPILER__")

    default_retry_count: int = Field(default=3, ge=0)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root stealthrun settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="STEALTHRUN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    stealth: StealthSettings = Field(default_factory=StealthSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    compiler: CompilerSettings = Field(default_factory=CompilerSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize the video directory against project_root."""
        video_dir = self.browser.record_video_dir
        if video_dir and not Path(video_dir).is_absolute():
            self.browser.record_video_dir = str(self.project_root / video_dir)
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
