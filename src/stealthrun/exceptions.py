"""stealthrun exception hierarchy.

``StepError`` subclasses are retryable: the session monitor applies the
step's error policy to them. ``SessionInitError`` is fatal for the session
and bypasses the policy entirely.
"""

from __future__ import annotations


class StealthRunError(Exception):
    """Base exception for all stealthrun errors."""


class SessionInitError(StealthRunError):
    """Raised when the browser session cannot be started (or is used before launch)."""


class StateTransitionError(StealthRunError):
    """Raised on an illegal step or session state transition.

    Attributes:
        current: The state being left.
        requested: The state that was requested.
    """

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Illegal transition {current} -> {requested}")


class StepError(StealthRunError):
    """Base class for retryable primitive failures.

    Attributes:
        context: The selector or URL the failing primitive was working on.
    """

    def __init__(self, message: str, context: str = "") -> None:
        self.context = context
        super().__init__(message)


class ElementNotFound(StepError):
    """Raised when a selector cannot be resolved or interacted with."""

    def __init__(self, selector: str, reason: str = "") -> None:
        self.selector = selector
        detail = f": {reason}" if reason else ""
        super().__init__(f"Element not found: {selector}{detail}", context=selector)


class NavigationTimeout(StepError):
    """Raised when a navigation does not complete within its timeout."""

    def __init__(self, url: str, timeout_ms: int) -> None:
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(f"Navigation to {url} timed out after {timeout_ms}ms", context=url)


class NavigationError(StepError):
    """Raised when navigation fails for a reason other than a timeout."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}", context=url)


class StepTimeout(StepError):
    """Raised when waiting for a selector exceeds its timeout."""

    def __init__(self, selector: str, timeout_ms: int) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(f"Timed out after {timeout_ms}ms waiting for {selector}", context=selector)


class ScriptExecutionError(StepError):
    """Raised when an evaluated page expression or another page operation fails."""
