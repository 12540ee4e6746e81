"""Shared test fixtures."""

import asyncio
from contextlib import asynccontextmanager

import pytest
import tomli_w

from stepstream.server.executor import StepExecutor, TaskState
from stepstream.web.transmitter import StreamTransmitter
import stepstream.web.runner as runner_module


@pytest.fixture(autouse=True)
def clean_registry():
    """Clear the live task registry before and after each test."""
    with runner_module._tasks_lock:
        runner_module._tasks.clear()
    yield
    with runner_module._tasks_lock:
        runner_module._tasks.clear()


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    from sse_starlette.sse import AppStatus
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def defaults_toml(tmp_path, monkeypatch):
    """Temporary defaults.toml with fast steps, patched into DEFAULTS_PATH."""
    toml_path = tmp_path / "defaults.toml"
    config = {
        "task": {"total_steps": 5, "step_duration": 0.001, "max_total_steps": 50},
        "server": {"host": "127.0.0.1", "port": 8765},
        "client": {"base_url": "http://testserver", "stop_timeout": 1.0},
        "logging": {"level": "DEBUG"},
    }
    with open(toml_path, "wb") as f:
        tomli_w.dump(config, f)
    monkeypatch.setattr("stepstream.core.config.DEFAULTS_PATH", toml_path)
    return toml_path


class LoopbackConnection:
    """Client end of an in-process stream."""

    def __init__(self, queue: asyncio.Queue, state: TaskState):
        self._queue = queue
        self.state = state
        self.task_id = state.task_id

    async def chunks(self):
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def request_stop(self) -> bool:
        self.state.signal.set()
        return True


class LoopbackConnector:
    """Connector joining a server-side transmitter to the client through a queue.

    Leaving ``open()`` early behaves like a dropped connection: the server
    side is cancelled the way the HTTP stack cancels a streaming body.
    """

    def __init__(self, total_steps=10, step_duration=0.01, chunk_size=None, work=None):
        self.total_steps = total_steps
        self.step_duration = step_duration
        self.chunk_size = chunk_size
        self.work = work
        self.states: list[TaskState] = []
        self.sent: list[bytes] = []
        self.errors: list[BaseException] = []

    @asynccontextmanager
    async def open(self):
        state = TaskState(total_steps=self.total_steps)
        self.states.append(state)
        executor = StepExecutor(state, step_duration=self.step_duration, work=self.work)
        transmitter = StreamTransmitter(executor)
        queue: asyncio.Queue = asyncio.Queue()

        async def write(frame: bytes) -> None:
            self.sent.append(frame)
            size = self.chunk_size or len(frame)
            for i in range(0, len(frame), size):
                queue.put_nowait(frame[i:i + size])

        async def close() -> None:
            queue.put_nowait(None)

        pump = asyncio.ensure_future(transmitter.pump(write, close))
        try:
            yield LoopbackConnection(queue, state)
        finally:
            if not pump.done():
                pump.cancel()
            results = await asyncio.gather(pump, return_exceptions=True)
            self.errors.extend(
                r for r in results
                if isinstance(r, BaseException) and not isinstance(r, asyncio.CancelledError)
            )


@pytest.fixture
def loopback():
    return LoopbackConnector
