"""Top-level entry points: compile a script and run it in a fresh stealth session.

Usage::

    from stealthrun.runner import run_script

    session = await run_script(Path("login.js").read_text(), task_name="login")
    print(session.status, session.completed_steps, "/", session.total_steps)
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from stealthrun.browser.engine import StealthBrowser
from stealthrun.browser.humanize import HumanPacer
from stealthrun.browser.profiles import ProfileGenerator
from stealthrun.compiler import compile_script
from stealthrun.exceptions import SessionInitError
from stealthrun.models.profile import SessionProfile
from stealthrun.models.session import ExecutionSession, SessionState, StepState
from stealthrun.runner.control import SessionControl
from stealthrun.runner.events import EventBus
from stealthrun.runner.monitor import SessionMonitor
from stealthrun.runner.retry import create_retry_strategy
from stealthrun.settings.config import Settings

logger = logging.getLogger(__name__)

BrowserFactory = Callable[..., StealthBrowser]


class ScriptJob(BaseModel):
    """One script to run as part of ``run_many``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    script_text: str
    task_name: str = "task"
    seed: int | None = None
    profile: SessionProfile | None = None
    event_bus: EventBus | None = Field(default=None, exclude=True)


async def run_script(
    script_text: str,
    *,
    task_name: str = "task",
    settings: Settings | None = None,
    profile: SessionProfile | None = None,
    seed: int | None = None,
    event_bus: EventBus | None = None,
    control: SessionControl | None = None,
    browser_factory: BrowserFactory = StealthBrowser,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ExecutionSession:
    """Compile *script_text*, launch a browser and run every step.

    A browser that fails to launch yields a failed session in which no step
    ran. The browser is always closed before returning.

    Args:
        script_text: Raw automation script.
        task_name: Name recorded on the session.
        settings: Resolved settings (``get_settings()`` when omitted).
        profile: Browser fingerprint; drawn from the pool when omitted.
        seed: Seeds profile selection and every human-timing draw.
        event_bus: Receives lifecycle events.
        control: Pause/stop token for the session.
        browser_factory: Builds the ``StealthBrowser`` (tests inject fakes).
        sleep: Coroutine used for human pacing and retry delays.
    """
    if settings is None:
        from stealthrun.settings import get_settings

        settings = get_settings()

    steps = compile_script(script_text, default_retry_count=settings.compiler.default_retry_count)
    rng = random.Random(seed)
    if profile is None:
        profile = ProfileGenerator(rng=rng).generate()

    pacer = HumanPacer(rng, sleep=sleep, scale=settings.timing.scale)
    browser = browser_factory(settings, pacer=pacer)
    monitor = SessionMonitor(
        browser,
        steps,
        task_name=task_name,
        retry_strategy=create_retry_strategy(
            settings.retry.strategy,
            base_delay=settings.retry.base_delay_sec,
            max_delay=settings.retry.max_delay_sec,
        ),
        abort_on_failure=settings.monitor.abort_on_failure,
        stop_grace_sec=settings.monitor.stop_grace_sec,
        event_bus=event_bus,
        control=control,
        sleep=sleep,
    )

    try:
        await browser.launch(profile)
    except SessionInitError as exc:
        await browser.close()
        return await monitor.fail(f"session init failed: {exc}")

    try:
        return await monitor.run()
    finally:
        await browser.close()


async def run_many(
    jobs: list[ScriptJob],
    *,
    concurrency: int = 2,
    settings: Settings | None = None,
    browser_factory: BrowserFactory = StealthBrowser,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[ExecutionSession]:
    """Run *jobs* with at most *concurrency* browsers alive at once.

    Every job gets its own browser and session; results are returned in
    job order. A job that raises yields a failed session instead of
    cancelling the others.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    semaphore = asyncio.Semaphore(concurrency)

    async def _run_one(job: ScriptJob) -> ExecutionSession:
        async with semaphore:
            logger.info("Starting job %s", job.task_name)
            try:
                return await run_script(
                    job.script_text,
                    task_name=job.task_name,
                    settings=settings,
                    profile=job.profile,
                    seed=job.seed,
                    event_bus=job.event_bus,
                    browser_factory=browser_factory,
                    sleep=sleep,
                )
            except Exception as exc:
                logger.exception("Job %s crashed", job.task_name)
                return _crashed_session(job, f"job crashed: {type(exc).__name__}: {exc}")

    return list(await asyncio.gather(*(_run_one(job) for job in jobs)))


def _crashed_session(job: ScriptJob, reason: str) -> ExecutionSession:
    """Failed session for a job that raised before its monitor could settle it."""
    try:
        steps = compile_script(job.script_text)
    except Exception:
        logger.exception("Could not compile script of crashed job %s", job.task_name)
        steps = []
    session = ExecutionSession.for_steps(str(uuid4()), job.task_name, steps)
    for status in session.steps:
        status.error = reason
        status.transition(StepState.FAILED)
        status.finalize()
        session.record_outcome(status)
    session.set_status(SessionState.FAILED)
    return session
