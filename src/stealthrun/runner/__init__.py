"""Step execution: session monitor, retry strategies, events and entry points."""

from stealthrun.runner.control import SessionControl
from stealthrun.runner.events import Event, EventBus, EventSink, EventType, InMemorySink, JsonlSink, LoggingSink
from stealthrun.runner.monitor import SessionMonitor
from stealthrun.runner.retry import (
    AdaptiveBackoff,
    ExponentialBackoff,
    ImmediateRetry,
    LinearBackoff,
    RetryStrategy,
    RetryStrategyName,
    create_retry_strategy,
)
from stealthrun.runner.runner import ScriptJob, run_many, run_script

__all__ = [
    "AdaptiveBackoff",
    "Event",
    "EventBus",
    "EventSink",
    "EventType",
    "ExponentialBackoff",
    "ImmediateRetry",
    "InMemorySink",
    "JsonlSink",
    "LinearBackoff",
    "LoggingSink",
    "RetryStrategy",
    "RetryStrategyName",
    "ScriptJob",
    "SessionControl",
    "SessionMonitor",
    "create_retry_strategy",
    "run_many",
    "run_script",
]
