"""Session monitor — drive compiled steps through the stealth browser.

The monitor owns one ``ExecutionSession`` and advances it step by step:

* Each step is dispatched through a table keyed by ``ActionType`` that
  covers every action type (checked at construction).
* Step failures go through the step's error policy (anything that is not
  a ``StepError`` is wrapped in ``ScriptExecutionError`` first): ignored steps
  are marked skipped, others are retried with the configured
  ``RetryStrategy`` delay, using the step's fallback params from the
  second attempt on. An exhausted step is failed and the session is
  aborted or continues depending on ``abort_on_failure``.
* ``SessionInitError`` fails the session immediately.
* Pause requests are honoured at step boundaries. A stop marks the session
  failed at once, gives the in-flight primitive ``stop_grace_sec`` to
  finish before cancelling it, then closes the browser.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any
from uuid import uuid4

from stealthrun.browser.engine import StealthBrowser
from stealthrun.exceptions import ScriptExecutionError, SessionInitError, StepError
from stealthrun.models.action import (
    ActionStep,
    ActionType,
    ClickParams,
    ExtractParams,
    NavigateParams,
    ScreenshotParams,
    ScrollParams,
    TypeParams,
    WaitParams,
    validate_step_sequence,
)
from stealthrun.models.session import ExecutionSession, SessionState, StepState, StepStatus
from stealthrun.runner.control import SessionControl
from stealthrun.runner.events import EventBus, EventType
from stealthrun.runner.retry import ExponentialBackoff, RetryStrategy

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Coroutine[Any, Any, Any]]
SleepFn = Callable[[float], Awaitable[None]]

NOT_EXECUTED = "not executed"


class _Stopped(Exception):
    """Internal signal: a stop request interrupted the current step."""


class SessionMonitor:
    """Run *steps* against *browser* and track their state.

    Args:
        browser: A launched ``StealthBrowser``.
        steps: Compiled steps with unique ids and increasing ordinals.
        task_name: Human-readable name recorded on the session.
        session_id: Explicit session id (a random one by default).
        retry_strategy: Delay policy between attempts.
        abort_on_failure: Stop the session after the first exhausted step.
        stop_grace_sec: How long an in-flight primitive may run after a stop.
        event_bus: Receives session and step lifecycle events.
        control: Shared pause/stop token.
        sleep: Coroutine used for retry delays.
    """

    def __init__(
        self,
        browser: StealthBrowser,
        steps: list[ActionStep],
        *,
        task_name: str = "task",
        session_id: str | None = None,
        retry_strategy: RetryStrategy | None = None,
        abort_on_failure: bool = True,
        stop_grace_sec: float = 5.0,
        event_bus: EventBus | None = None,
        control: SessionControl | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        validate_step_sequence(steps)
        self._browser = browser
        self._steps = list(steps)
        self._retry = retry_strategy or ExponentialBackoff()
        self._abort_on_failure = abort_on_failure
        self._stop_grace_sec = stop_grace_sec
        self._control = control or SessionControl()
        self._sleep = sleep
        self._finished = False

        self._session = ExecutionSession.for_steps(session_id or str(uuid4()), task_name, self._steps)
        self._events = event_bus or EventBus()
        if not self._events.session_id:
            self._events.session_id = self._session.id

        self._handlers: dict[ActionType, Handler] = {
            ActionType.NAVIGATE: self._navigate,
            ActionType.CLICK: self._click,
            ActionType.TYPE: self._type,
            ActionType.WAIT: self._wait,
            ActionType.EXTRACT: self._extract,
            ActionType.SCREENSHOT: self._screenshot,
            ActionType.SCROLL: self._scroll,
        }
        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for action types: {sorted(m.value for m in missing)}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def session(self) -> ExecutionSession:
        return self._session

    @property
    def control(self) -> SessionControl:
        return self._control

    def pause(self) -> None:
        """Pause before the next step starts."""
        self._control.pause()

    def resume(self) -> None:
        self._control.resume()

    def stop(self) -> None:
        """Fail the session now; the in-flight primitive gets ``stop_grace_sec`` to finish."""
        self._control.stop()
        self._mark_stopped()

    async def run(self) -> ExecutionSession:
        """Execute every non-final step in ordinal order and return the session."""
        session = self._session
        if self._finished:
            return session

        logger.info("Session %s started: %s (%d steps)", session.id, session.task_name, session.total_steps)
        await self._events.emit(
            EventType.SESSION_STARTED,
            {"task_name": session.task_name, "total_steps": session.total_steps},
        )

        try:
            await self._run_steps()
        except SessionInitError as exc:
            logger.error("Session %s failed to initialise: %s", session.id, exc)
            await self._events.emit(EventType.ERROR, {"error": str(exc)})
            await self._fail_remaining(f"session init failed: {exc}")
        except Exception as exc:
            logger.exception("Session %s crashed", session.id)
            await self._events.emit(EventType.ERROR, {"error": str(exc)})
            await self._fail_remaining(f"internal error: {exc}")

        await self._finish()
        return session

    async def fail(self, reason: str) -> ExecutionSession:
        """Fail the session without running any further step (e.g. the browser never started)."""
        if not self._finished:
            logger.error("Session %s failed: %s", self._session.id, reason)
            await self._events.emit(EventType.ERROR, {"error": reason})
            await self._fail_remaining(reason)
            await self._finish()
        return self._session

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    async def _run_steps(self) -> None:
        start = self._session.first_pending_index()
        if start is None:
            return
        for step, status in zip(self._steps[start:], self._session.steps[start:]):
            if not await self._at_boundary():
                return
            if not await self._run_step(step, status):
                return

    async def _at_boundary(self) -> bool:
        """Honour pause and stop requests. Returns ``False`` when stopped."""
        if self._control.stopped:
            self._mark_stopped()
            return False
        if self._control.paused:
            self._session.set_status(SessionState.PAUSED)
            logger.info("Session %s paused", self._session.id)
            await self._events.emit(EventType.SESSION_PAUSED, {"progress": self._session.progress})
            await self._control.wait_if_paused()
            if self._control.stopped:
                self._mark_stopped()
                return False
            self._session.set_status(SessionState.RUNNING)
            logger.info("Session %s resumed", self._session.id)
            await self._events.emit(EventType.SESSION_RESUMED, {"progress": self._session.progress})
        return True

    async def _run_step(self, step: ActionStep, status: StepStatus) -> bool:
        """Run *step* to a final state. Returns ``False`` when the session must not continue."""
        policy = step.error_policy
        max_attempts = 1 + policy.retry_count
        attempt = 0

        while True:
            attempt += 1
            if attempt > 1:
                status.retry_count += 1
            params, fallback_index = step.params_for(attempt)
            status.transition(StepState.RUNNING)
            if attempt == 1:
                await self._events.emit(
                    EventType.STEP_STARTED,
                    {"step_id": step.id, "ordinal": step.ordinal, "type": step.type.value},
                )
            label = f" (fallback {fallback_index})" if fallback_index is not None else ""
            status.log(f"attempt {attempt}/{max_attempts}{label}")
            logger.info("Step %s attempt %d/%d%s: %s", step.id, attempt, max_attempts, label, step.type.value)

            try:
                result = await self._invoke(self._handlers[params.action](params))
            except _Stopped:
                status.error = "stopped"
                status.log("stopped while running")
                status.transition(StepState.FAILED)
                await self._finalize_step(status)
                return False
            except SessionInitError:
                raise
            except Exception as raised:
                exc = raised if isinstance(raised, StepError) else self._unexpected(step, raised)
                status.error = str(exc)
                if policy.ignore_errors:
                    status.log(f"error ignored: {exc}")
                    status.transition(StepState.SKIPPED)
                    logger.warning("Step %s skipped: %s", step.id, exc)
                    await self._finalize_step(status)
                    return True

                status.log(f"attempt {attempt} failed: {exc}")
                status.transition(StepState.FAILED)
                logger.warning("Step %s attempt %d/%d failed: %s", step.id, attempt, max_attempts, exc)

                if attempt < max_attempts and not self._control.stopped:
                    delay = self._retry.delay(attempt, exc)
                    await self._events.emit(
                        EventType.STEP_RETRYING,
                        {"step_id": step.id, "attempt": attempt + 1, "delay_sec": delay, "error": str(exc)},
                    )
                    if await self._wait_or_stopped(delay):
                        continue

                await self._finalize_step(status)
                if self._abort_on_failure:
                    logger.error("Step %s exhausted its attempts; aborting session", step.id)
                    return False
                return True

            self._store_result(params.action, status, result)
            status.error = None
            status.fallback_used = fallback_index
            status.transition(StepState.SUCCESS)
            await self._finalize_step(status)
            return True

    async def _invoke(self, coro: Coroutine[Any, Any, Any]) -> Any:
        """Await *coro*, cancelling it ``stop_grace_sec`` after a stop request."""
        task = asyncio.ensure_future(coro)
        stop_waiter = asyncio.ensure_future(self._control.wait_stopped())
        try:
            done, _ = await asyncio.wait({task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if task not in done:
                self._mark_stopped()
                await self._events.emit(EventType.SESSION_STOPPING, {"grace_sec": self._stop_grace_sec})
                done, _ = await asyncio.wait({task}, timeout=self._stop_grace_sec)
                if task not in done:
                    task.cancel()
                    await asyncio.gather(task, return_exceptions=True)
                    raise _Stopped()
            return task.result()
        finally:
            stop_waiter.cancel()

    async def _wait_or_stopped(self, delay: float) -> bool:
        """Sleep *delay* seconds. Returns ``False`` if a stop arrived first."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        stop_waiter = asyncio.ensure_future(self._control.wait_stopped())
        done, pending = await asyncio.wait({sleeper, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        for fut in pending:
            fut.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if self._control.stopped:
            self._mark_stopped()
            return False
        return sleeper in done

    def _mark_stopped(self) -> None:
        """Fail the session as soon as a stop is seen; steps are settled in ``_finish``."""
        session = self._session
        if not session.is_terminal:
            session.set_status(SessionState.FAILED)
            logger.info("Session %s stop requested; marked failed", session.id)

    def _unexpected(self, step: ActionStep, exc: Exception) -> ScriptExecutionError:
        logger.exception("Step %s raised an unexpected error", step.id)
        return ScriptExecutionError(f"Unexpected {type(exc).__name__}: {exc}", context=step.id)

    def _store_result(self, action: ActionType, status: StepStatus, result: Any) -> None:
        if action == ActionType.SCREENSHOT:
            status.screenshot = base64.b64encode(result).decode("ascii")
        elif result is not None:
            status.output = result

    async def _finalize_step(self, status: StepStatus) -> None:
        status.finalize()
        self._session.record_outcome(status)
        await self._events.emit(
            EventType.STEP_FINISHED,
            {
                "step_id": status.step_id,
                "ordinal": status.ordinal,
                "status": status.status.value,
                "retry_count": status.retry_count,
                "fallback_used": status.fallback_used,
                "duration_ms": status.duration_ms,
                "error": status.error,
            },
        )
        await self._events.emit(EventType.PROGRESS, {"progress": self._session.progress})

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def _fail_remaining(self, reason: str) -> None:
        for status in self._session.steps:
            if status.is_terminal:
                continue
            status.error = status.error or reason
            if status.status != StepState.FAILED:
                status.transition(StepState.FAILED)
            status.log(reason)
            await self._finalize_step(status)

    async def _finish(self) -> None:
        session = self._session
        self._finished = True
        await self._fail_remaining(NOT_EXECUTED)

        all_passed = all(s.status in (StepState.SUCCESS, StepState.SKIPPED) for s in session.steps)
        if not session.is_terminal:
            if all_passed and not self._control.stopped and session.status == SessionState.RUNNING:
                session.set_status(SessionState.COMPLETED)
            else:
                session.set_status(SessionState.FAILED)

        if self._control.stopped:
            logger.info("Session %s stopped; closing browser", session.id)
            await self._browser.close()

        logger.info(
            "Session %s %s (%d/%d completed, %d failed)",
            session.id,
            session.status.value,
            session.completed_steps,
            session.total_steps,
            session.failed_steps,
        )
        await self._events.emit(
            EventType.SESSION_FINISHED,
            {
                "status": session.status.value,
                "completed_steps": session.completed_steps,
                "failed_steps": session.failed_steps,
                "total_steps": session.total_steps,
            },
        )

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    async def _navigate(self, params: NavigateParams) -> None:
        await self._browser.navigate(params.url)

    async def _click(self, params: ClickParams) -> None:
        await self._browser.click(params.selector)

    async def _type(self, params: TypeParams) -> None:
        await self._browser.type(params.selector, params.text)

    async def _wait(self, params: WaitParams) -> None:
        if params.mode == "selector":
            await self._browser.wait_for_selector(params.selector)
        else:
            await self._browser.wait_for_duration(params.duration_ms)

    async def _extract(self, params: ExtractParams) -> list[dict[str, Any]]:
        records = await self._browser.extract(params.selector)
        return [r.model_dump() for r in records]

    async def _screenshot(self, params: ScreenshotParams) -> bytes:
        return await self._browser.screenshot(full_page=params.full_page)

    async def _scroll(self, params: ScrollParams) -> None:
        distance = None if params.position == "end" else params.position
        await self._browser.scroll(params.direction, distance=distance)
