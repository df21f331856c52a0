"""Unit tests for the session event bus."""

from __future__ import annotations

import json
from io import StringIO

import pytest

from stealthrun.runner.events import Event, EventBus, EventSink, EventType, InMemorySink, JsonlSink, LoggingSink


class TestEvent:
    """Tests for the Event model."""

    def test_to_jsonl(self) -> None:
        line = Event(event_type=EventType.STEP_STARTED, session_id="s1", data={"step_id": "step-1"}).to_jsonl()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["event_type"] == "step_started"
        assert parsed["session_id"] == "s1"
        assert "T" in parsed["timestamp"]


class TestSinks:
    """Built-in sinks satisfy the protocol and record events."""

    def test_protocol(self) -> None:
        for sink in (InMemorySink(), JsonlSink(StringIO()), LoggingSink()):
            assert isinstance(sink, EventSink)

    @pytest.mark.anyio
    async def test_jsonl_sink(self) -> None:
        buf = StringIO()
        sink = JsonlSink(buf)
        for _ in range(3):
            await sink.handle_event(Event(event_type=EventType.LOG))
        assert len(buf.getvalue().strip().split("\n")) == 3

    @pytest.mark.anyio
    async def test_in_memory_filter(self) -> None:
        sink = InMemorySink()
        await sink.handle_event(Event(event_type=EventType.LOG))
        await sink.handle_event(Event(event_type=EventType.PROGRESS))
        assert sink.count == 2
        assert len(sink.of_type(EventType.PROGRESS)) == 1
        sink.clear()
        assert sink.count == 0


class _BrokenSink:
    async def handle_event(self, event: Event) -> None:
        raise RuntimeError("sink down")


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.anyio
    async def test_emit_to_all_sinks(self) -> None:
        bus = EventBus(session_id="abc")
        a, b = InMemorySink(), InMemorySink()
        bus.add_sink(a)
        bus.add_sink(b)
        await bus.emit(EventType.STEP_FINISHED, {"status": "success"})
        assert a.count == b.count == 1
        assert a.events[0].session_id == "abc"

    @pytest.mark.anyio
    async def test_failing_sink_does_not_block_others(self) -> None:
        bus = EventBus()
        good = InMemorySink()
        bus.add_sink(_BrokenSink())
        bus.add_sink(good)
        await bus.emit(EventType.LOG, {"msg": "hi"})
        assert good.count == 1

    @pytest.mark.anyio
    async def test_unknown_string_type_becomes_log(self) -> None:
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit("not_a_type")
        await bus.emit("progress", {"progress": 40.0})
        assert sink.events[0].event_type == EventType.LOG
        assert sink.events[1].event_type == EventType.PROGRESS

    def test_remove_sink(self) -> None:
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        bus.remove_sink(sink)
        assert bus.sink_count == 0

    @pytest.mark.anyio
    async def test_snapshot(self) -> None:
        bus = EventBus(session_id="s")
        await bus.emit(EventType.SESSION_STARTED)
        await bus.emit(EventType.STEP_STARTED, {"step_id": "step-2"})
        await bus.emit(EventType.PROGRESS, {"progress": 50.0})
        await bus.emit(EventType.SESSION_PAUSED)
        snap = bus.get_snapshot()
        assert snap["state"] == "paused"
        assert snap["step_id"] == "step-2"
        assert snap["progress"] == 50.0
