"""Data models: action steps, session profiles, execution sessions."""

from stealthrun.models.action import (
    ActionParams,
    ActionStep,
    ActionType,
    ClickParams,
    ErrorPolicy,
    ExtractParams,
    NavigateParams,
    ScreenshotParams,
    ScrollParams,
    TypeParams,
    WaitParams,
)
from stealthrun.models.profile import ProfileOverrides, SessionProfile, Viewport
from stealthrun.models.session import (
    ExecutionSession,
    ExtractedRecord,
    SessionState,
    StepState,
    StepStatus,
)

__all__ = [
    "ActionParams",
    "ActionStep",
    "ActionType",
    "ClickParams",
    "ErrorPolicy",
    "ExecutionSession",
    "ExtractParams",
    "ExtractedRecord",
    "NavigateParams",
    "ProfileOverrides",
    "ScreenshotParams",
    "ScrollParams",
    "SessionProfile",
    "SessionState",
    "StepState",
    "StepStatus",
    "TypeParams",
    "Viewport",
    "WaitParams",
]
