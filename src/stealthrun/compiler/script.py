"""Script compiler — recognise known action idioms inside free-form script text.

The compiler is deliberately not a parser for any scripting language. It
scans the text line by line:

* A step-boundary comment (``// Step 3: …``, ``# Step 3``, ``// خطوة 3``)
  closes the open step and opens a new one. The keyword must be followed
  by a number; ``// Step back to the list`` is an ordinary comment.
* Inside a step, lines are matched against a fixed table of call idioms
  (JavaScript and Python Playwright spellings). The last idiom matched in a
  block sets the step's action.
* Two auxiliary idioms adjust the step's error policy: a
  ``retries_stepN = K`` assignment and a "skip the error" warning log.

Everything else is inert. Lines before the first marker are discarded.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel

from stealthrun.models.action import (
    ActionStep,
    ClickParams,
    ErrorPolicy,
    ExtractParams,
    NavigateParams,
    ScreenshotParams,
    ScrollParams,
    TypeParams,
    WaitParams,
)

logger = logging.getLogger(__name__)

_Q = r"""['"`]([^'"`]*)['"`]"""  # one quoted literal, captured

_STEP_MARKER_RE = re.compile(r"^(?://|#)\s*(?:step|خطوة)\s*\d+", re.IGNORECASE)
_RETRY_RE = re.compile(r"\bretries_step\w*\s*=\s*(\d+)")
_WARN_RE = re.compile(r"console\.warn\(|logger\.warning\(|logging\.warning\(")
_SKIP_MARKER_RE = re.compile(r"skip|ignor|تخطي الخطأ", re.IGNORECASE)
_PAGE_CALL_RE = re.compile(r"\bpage\.[\w$]+\(")


def _int(value: str | None) -> int:
    return int(value) if value else 0


def _navigate(m: re.Match[str], line: str) -> BaseModel:
    return NavigateParams(url=m.group(1) or "")


def _click(m: re.Match[str], line: str) -> BaseModel:
    return ClickParams(selector=m.group(1) or "")


def _fill(m: re.Match[str], line: str) -> BaseModel:
    return TypeParams(selector=m.group(1) or "", text=m.group(2) or "")


def _wait_time(m: re.Match[str], line: str) -> BaseModel:
    return WaitParams(mode="time", duration_ms=_int(m.group(1)))


def _wait_selector(m: re.Match[str], line: str) -> BaseModel:
    return WaitParams(mode="selector", selector=m.group(1) or "")


def _extract(m: re.Match[str], line: str) -> BaseModel:
    return ExtractParams(selector=m.group(1) or "")


def _screenshot(m: re.Match[str], line: str) -> BaseModel:
    full_page = bool(re.search(r"fullPage\s*:\s*true|full_page\s*=\s*True", line))
    return ScreenshotParams(full_page=full_page)


def _scroll(m: re.Match[str], line: str) -> BaseModel:
    target = m.group(1)
    if target and target.isdigit():
        return ScrollParams(position=int(target))
    return ScrollParams(position="end")


# Order matters only for lines that contain several calls: the last entry
# that matches a line wins, mirroring last-match-wins across lines.
_IDIOMS: list[tuple[str, re.Pattern[str], Callable[[re.Match[str], str], BaseModel]]] = [
    ("navigate", re.compile(rf"\bpage\.goto\(\s*(?:{_Q})?"), _navigate),
    ("click", re.compile(rf"\bpage\.click\(\s*(?:{_Q})?"), _click),
    ("fill", re.compile(rf"\bpage\.fill\(\s*(?:{_Q})?(?:\s*,\s*{_Q})?"), _fill),
    ("wait-time", re.compile(r"\bpage\.(?:waitForTimeout|wait_for_timeout)\(\s*(\d+)?"), _wait_time),
    ("wait-selector", re.compile(rf"\bpage\.(?:waitForSelector|wait_for_selector)\(\s*(?:{_Q})?"), _wait_selector),
    ("extract", re.compile(rf"\bpage\.(?:\$\$eval|eval_on_selector_all)\(\s*(?:{_Q})?"), _extract),
    ("screenshot", re.compile(r"\bpage\.screenshot\("), _screenshot),
    ("scroll", re.compile(r"window\.scrollTo\(\s*[^,()]*(?:,\s*(\d+|document\.body\.scrollHeight))?"), _scroll),
]


class CompileWarning(BaseModel):
    """Non-fatal note about a line the compiler could not use."""

    line_number: int
    line: str
    message: str


class _OpenStep:
    """Mutable accumulator for the step currently being compiled."""

    def __init__(self, ordinal: int, default_retry_count: int, line_number: int) -> None:
        self.ordinal = ordinal
        self.line_number = line_number
        self.params: BaseModel = NavigateParams()
        self.matched = False
        self.ignore_errors = False
        self.retry_count = default_retry_count

    def build(self) -> ActionStep:
        return ActionStep(
            id=f"step-{self.ordinal}",
            ordinal=self.ordinal,
            params=self.params,
            error_policy=ErrorPolicy(
                ignore_errors=self.ignore_errors,
                retry_count=self.retry_count,
            ),
        )


class ScriptCompiler:
    """Compile script text into an ordered list of ``ActionStep`` records.

    Args:
        default_retry_count: Retry count for steps that carry no explicit
            ``retries_stepN = K`` assignment.
    """

    def __init__(self, default_retry_count: int = 3) -> None:
        if default_retry_count < 0:
            raise ValueError("default_retry_count must be >= 0")
        self._default_retry_count = default_retry_count
        self.warnings: list[CompileWarning] = []

    def compile(self, script_text: str) -> list[ActionStep]:
        """Compile *script_text*. Warnings from this run are left in ``self.warnings``."""
        self.warnings = []
        if not script_text or not script_text.strip():
            return []

        steps: list[ActionStep] = []
        current: _OpenStep | None = None

        for line_number, raw in enumerate(script_text.splitlines(), start=1):
            line = raw.strip()

            if _STEP_MARKER_RE.search(line):
                if current is not None:
                    steps.append(self._flush(current))
                current = _OpenStep(len(steps) + 1, self._default_retry_count, line_number)
                # A marker line may also carry an inline action.

            if current is None:
                continue

            self._apply_line(current, line, line_number)

        if current is not None:
            steps.append(self._flush(current))

        logger.debug("Compiled %d steps (%d warnings)", len(steps), len(self.warnings))
        return steps

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _apply_line(self, step: _OpenStep, line: str, line_number: int) -> None:
        matched = False
        for _name, pattern, build in _IDIOMS:
            m = pattern.search(line)
            if m is None:
                continue
            step.params = build(m, line)
            step.matched = True
            matched = True

        retry = _RETRY_RE.search(line)
        if retry:
            step.retry_count = int(retry.group(1))

        if _WARN_RE.search(line) and _SKIP_MARKER_RE.search(line):
            step.ignore_errors = True

        if not matched and _PAGE_CALL_RE.search(line):
            self._warn(line_number, line, "unrecognized page call; line ignored")

    def _flush(self, step: _OpenStep) -> ActionStep:
        if not step.matched:
            self._warn(
                step.line_number,
                f"step-{step.ordinal}",
                "step block has no recognized action; defaulting to an empty navigate",
            )
        return step.build()

    def _warn(self, line_number: int, line: str, message: str) -> None:
        warning = CompileWarning(line_number=line_number, line=line, message=message)
        self.warnings.append(warning)
        logger.warning("Line %d: %s (%s)", line_number, message, line[:80])


def compile_script(script_text: str, *, default_retry_count: int = 3) -> list[ActionStep]:
    """Compile *script_text* into ``ActionStep`` records.

    Empty or whitespace-only input yields ``[]``. Compilation never fails on
    unrecognized content.
    """
    return ScriptCompiler(default_retry_count=default_retry_count).compile(script_text)


def load_script(path: Path | str) -> str:
    """Read a script file as UTF-8 text."""
    return Path(path).read_text(encoding="utf-8")
