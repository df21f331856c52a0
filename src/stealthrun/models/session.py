"""Step and session state machines plus the execution artifact.

``ExecutionSession`` is the single artifact handed to reporting and
persistence collaborators. Its ``steps`` carry enough history (logs,
timings, retries, fallbacks, errors) to reconstruct a run without
re-executing it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from stealthrun.exceptions import StateTransitionError
from stealthrun.models.action import ActionStep, ActionType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SessionState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STEP_STATES = {StepState.SUCCESS, StepState.SKIPPED, StepState.FAILED}
TERMINAL_SESSION_STATES = {SessionState.COMPLETED, SessionState.FAILED}

# FAILED -> RUNNING is the retry edge; a step is only final once the
# monitor stops retrying it (see ``StepStatus.finalize``).
STEP_TRANSITIONS: dict[StepState, set[StepState]] = {
    StepState.PENDING: {StepState.RUNNING, StepState.FAILED},
    StepState.RUNNING: {StepState.SUCCESS, StepState.FAILED, StepState.SKIPPED},
    StepState.FAILED: {StepState.RUNNING},
    StepState.SUCCESS: set(),
    StepState.SKIPPED: set(),
}

SESSION_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.RUNNING: {SessionState.PAUSED, SessionState.COMPLETED, SessionState.FAILED},
    SessionState.PAUSED: {SessionState.RUNNING, SessionState.FAILED},
    SessionState.COMPLETED: set(),
    SessionState.FAILED: set(),
}


class ExtractedRecord(BaseModel):
    """One element matched by an extract step."""

    text: str = ""
    raw_markup: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)


class StepStatus(BaseModel):
    """Execution state of one ``ActionStep``."""

    step_id: str
    ordinal: int
    type: ActionType
    status: StepState = StepState.PENDING
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_ms: int | None = None
    error: str | None = None
    retry_count: int = 0
    fallback_used: int | None = None
    logs: list[str] = Field(default_factory=list)
    output: Any = None
    screenshot: str | None = None
    video: str | None = None

    # Set once the monitor has stopped retrying; a FAILED step that is
    # final can no longer re-enter RUNNING.
    final: bool = False

    @classmethod
    def for_step(cls, step: ActionStep) -> "StepStatus":
        return cls(step_id=step.id, ordinal=step.ordinal, type=step.type)

    @property
    def is_terminal(self) -> bool:
        return self.final and self.status in TERMINAL_STEP_STATES

    def transition(self, new: StepState) -> None:
        """Move to *new*, enforcing ``STEP_TRANSITIONS``.

        Raises:
            StateTransitionError: If the step is final or the edge is not allowed.
        """
        if self.final or new not in STEP_TRANSITIONS[self.status]:
            raise StateTransitionError(self.status.value, new.value)
        if new == StepState.RUNNING and self.started_at is None:
            self.started_at = _utcnow()
        self.status = new

    def log(self, message: str) -> None:
        if self.final:
            raise StateTransitionError(self.status.value, "log")
        self.logs.append(message)

    def finalize(self) -> None:
        """Freeze the step in its current terminal state and record timings."""
        if self.status not in TERMINAL_STEP_STATES:
            raise StateTransitionError(self.status.value, "final")
        self.ended_at = _utcnow()
        if self.started_at is not None:
            delta = self.ended_at - self.started_at
            self.duration_ms = int(delta.total_seconds() * 1000)
        self.final = True


class ExecutionSession(BaseModel):
    """Aggregate state of one script run."""

    id: str
    task_name: str
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: datetime | None = None
    status: SessionState = SessionState.RUNNING
    steps: list[StepStatus] = Field(default_factory=list)
    total_steps: int = 0
    completed_steps: int = 0
    failed_steps: int = 0

    @classmethod
    def for_steps(cls, session_id: str, task_name: str, steps: list[ActionStep]) -> "ExecutionSession":
        return cls(
            id=session_id,
            task_name=task_name,
            steps=[StepStatus.for_step(s) for s in steps],
            total_steps=len(steps),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATES

    @property
    def progress(self) -> float:
        """Percentage of steps resolved (success, skipped or failed)."""
        if self.total_steps == 0:
            return 100.0 if self.is_terminal else 0.0
        return (self.completed_steps + self.failed_steps) / self.total_steps * 100

    def first_pending_index(self) -> int | None:
        """Index of the first step that is not yet final, or ``None``."""
        for idx, step in enumerate(self.steps):
            if not step.is_terminal:
                return idx
        return None

    def set_status(self, new: SessionState) -> None:
        """Move the session to *new*, enforcing ``SESSION_TRANSITIONS``."""
        if new not in SESSION_TRANSITIONS[self.status]:
            raise StateTransitionError(self.status.value, new.value)
        self.status = new
        if new in TERMINAL_SESSION_STATES:
            self.ended_at = _utcnow()

    def record_outcome(self, step: StepStatus) -> None:
        """Count a step that has just been finalized."""
        if step.status == StepState.FAILED:
            self.failed_steps += 1
        else:
            self.completed_steps += 1

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent)
