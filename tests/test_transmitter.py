"""Tests for the StreamTransmitter."""

import asyncio

import pytest

from stepstream.core.codec import decode
from stepstream.core.errors import ExecutorFault
from stepstream.server.executor import StepExecutor, TaskState
from stepstream.web.transmitter import StreamTransmitter


def _decode_frames(frames: list[bytes]) -> list:
    events = []
    for frame in frames:
        event, consumed = decode(frame)
        assert consumed == len(frame)
        events.append(event)
    return events


class _Sink:
    """Output stream recording writes; can fail after N writes."""

    def __init__(self, fail_after: int | None = None):
        self.frames: list[bytes] = []
        self.closed = 0
        self.fail_after = fail_after

    async def write(self, frame: bytes) -> None:
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise ConnectionResetError("peer reset")
        self.frames.append(frame)

    async def close(self) -> None:
        self.closed += 1


class TestFrames:
    def test_frames_in_order_until_complete(self):
        closed = []
        state = TaskState(total_steps=3)
        transmitter = StreamTransmitter(StepExecutor(state, step_duration=0), on_close=lambda: closed.append(True))

        async def scenario():
            return [frame async for frame in transmitter.frames()]

        events = _decode_frames(asyncio.run(scenario()))
        assert [(e.kind, e.step) for e in events] == [
            ("progress", 1), ("progress", 2), ("progress", 3), ("complete", None),
        ]
        assert transmitter.terminated is True
        assert state.cancelled is False
        assert closed == [True]

    def test_fault_raises_executor_fault_without_frame(self):
        state = TaskState(total_steps=4)

        async def work(step):
            if step == 3:
                raise KeyError("missing input")

        transmitter = StreamTransmitter(StepExecutor(state, work=work))
        frames = []

        async def scenario():
            async for frame in transmitter.frames():
                frames.append(frame)

        with pytest.raises(ExecutorFault) as exc_info:
            asyncio.run(scenario())
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert [e.step for e in _decode_frames(frames)] == [1, 2]
        assert transmitter.faulted is True
        # A fault is not a cancellation
        assert state.cancelled is False

    def test_consumer_closing_early_sets_signal(self):
        """Dropping the body iterator mid-stream (client gone) cancels the task."""
        state = TaskState(total_steps=10)
        transmitter = StreamTransmitter(StepExecutor(state, step_duration=0))

        async def scenario():
            frames = transmitter.frames()
            first = await frames.__anext__()
            await frames.aclose()
            return first

        first = asyncio.run(scenario())
        assert decode(first)[0].step == 1
        assert state.cancelled is True

    def test_cancellation_of_streaming_task_sets_signal(self):
        state = TaskState(total_steps=10)
        transmitter = StreamTransmitter(StepExecutor(state, step_duration=10))

        async def consume():
            async for _ in transmitter.frames():
                pass

        async def scenario():
            task = asyncio.ensure_future(consume())
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert state.cancelled is True
        assert transmitter.terminated is False


class TestPump:
    def test_writes_each_frame_then_closes(self):
        sink = _Sink()
        transmitter = StreamTransmitter(StepExecutor(TaskState(total_steps=2), step_duration=0))
        asyncio.run(transmitter.pump(sink.write, sink.close))

        events = _decode_frames(sink.frames)
        assert [e.kind for e in events] == ["progress", "progress", "complete"]
        assert sink.closed == 1

    def test_cancelled_task_writes_acknowledgement_and_closes(self):
        state = TaskState(total_steps=5)
        state.signal.set()
        sink = _Sink()
        asyncio.run(StreamTransmitter(StepExecutor(state, step_duration=0)).pump(sink.write, sink.close))

        assert [(e.kind, e.step) for e in _decode_frames(sink.frames)] == [("cancelled", 1)]
        assert sink.closed == 1

    def test_write_failure_stops_quietly(self):
        """A write failing after disconnect stops production without raising."""
        state = TaskState(total_steps=10)
        calls = []

        async def work(step):
            calls.append(step)

        sink = _Sink(fail_after=2)
        asyncio.run(StreamTransmitter(StepExecutor(state, work=work)).pump(sink.write, sink.close))

        assert len(sink.frames) == 2
        assert sink.closed == 1
        assert state.cancelled is True
        assert calls == [1, 2, 3]

    def test_fault_still_closes_stream(self):
        async def work(step):
            raise RuntimeError("boom")

        sink = _Sink()
        transmitter = StreamTransmitter(StepExecutor(TaskState(total_steps=3), work=work))
        with pytest.raises(ExecutorFault):
            asyncio.run(transmitter.pump(sink.write, sink.close))
        assert sink.frames == []
        assert sink.closed == 1
