"""Cancellation bridge: one live task per instance, with local abort and
server-acknowledged stop.

Concurrent ``begin()`` calls are rejected with AlreadyRunning rather than
superseding the running task.
"""

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass, field
from typing import Protocol

from ..core.cancellation import CancellationSignal, run_until_cancelled
from ..core.constants import EVENT_CANCELLED, EVENT_COMPLETE
from ..core.errors import AlreadyRunning, TransportError
from ..core.events import TaskEvent
from .receiver import StreamEnd, StreamReceiver
from .transport import Connection, Connector

logger = logging.getLogger(__name__)


class TaskOutcome(str, enum.Enum):
    """Every task ends in exactly one of these."""
    COMPLETED = "completed"
    ABORTED = "aborted"                    # cancelled locally by the user
    SERVER_CANCELLED = "server_cancelled"  # server acknowledged cancellation
    FAILED = "failed"                      # transport error


class TaskListener(Protocol):
    def on_connected(self, handle: "TaskHandle") -> None: ...

    def on_event(self, handle: "TaskHandle", event: TaskEvent) -> None: ...

    def on_finished(self, handle: "TaskHandle") -> None: ...


@dataclass
class TaskHandle:
    """Client-side view of one task run."""
    token: CancellationSignal = field(default_factory=CancellationSignal)
    task_id: str | None = None
    outcome: TaskOutcome | None = None
    cancelled_step: int | None = None
    last_step: int = 0
    error: Exception | None = None
    _task: asyncio.Task | None = field(default=None, repr=False)
    _connection: Connection | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.outcome is not None

    async def wait(self) -> TaskOutcome:
        """Wait for the task to reach its terminal outcome."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.outcome


class _HandleEvents:
    """Receiver handler that records the terminal outcome on the handle."""

    def __init__(self, handle: TaskHandle, listener: TaskListener | None):
        self.handle = handle
        self.listener = listener
        self.end: StreamEnd | None = None

    def on_event(self, event: TaskEvent) -> None:
        handle = self.handle
        if event.kind == EVENT_COMPLETE:
            handle.outcome = TaskOutcome.COMPLETED
        elif event.kind == EVENT_CANCELLED:
            handle.outcome = TaskOutcome.SERVER_CANCELLED
            handle.cancelled_step = event.step
        elif event.step is not None:
            handle.last_step = event.step
        if self.listener is not None:
            self.listener.on_event(handle, event)

    def on_end(self, end: StreamEnd, error: Exception | None) -> None:
        self.end = end
        if error is not None and self.handle.error is None:
            self.handle.error = error


class CancellationBridge:
    """Owns at most one live task against a connector."""

    def __init__(
        self,
        connector: Connector,
        listener: TaskListener | None = None,
        stop_timeout: float = 5.0,
    ):
        self.connector = connector
        self.listener = listener
        self.stop_timeout = stop_timeout
        self._handle: TaskHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> TaskHandle | None:
        return self._handle

    def begin(self) -> TaskHandle:
        """Open a new task stream. Must be called from a running event loop."""
        if self._handle is not None:
            raise AlreadyRunning("A task is already running")
        handle = TaskHandle()
        self._handle = handle
        handle._task = asyncio.create_task(self._run(handle))
        return handle

    def cancel(self) -> bool:
        """Abort the live task's connection. Returns False if there was nothing to abort."""
        handle = self._handle
        if handle is None or handle.done:
            return False
        if not handle.token.set():
            return False
        logger.info("Aborting task %s", handle.task_id)
        return True

    async def request_stop(self) -> bool:
        """Ask the server to stop the live task and wait for its acknowledgement.

        Falls back to a local abort when the task id is not known yet, the
        request fails, or no acknowledgement arrives within ``stop_timeout``.
        Returns False if there was no live task.
        """
        handle = self._handle
        if handle is None or handle.done or handle.token.is_set:
            return False

        connection = handle._connection
        try:
            accepted = connection is not None and await connection.request_stop()
        except TransportError as e:
            logger.warning("Stop request failed, aborting locally: %s", e)
            accepted = False

        if accepted:
            try:
                await asyncio.wait_for(asyncio.shield(handle._task), self.stop_timeout)
                return True
            except asyncio.TimeoutError:
                logger.warning("No cancellation acknowledgement within %.1fs", self.stop_timeout)

        self.cancel()
        return True

    async def _run(self, handle: TaskHandle) -> None:
        events = _HandleEvents(handle, self.listener)
        receiver = StreamReceiver(events)
        try:
            async with contextlib.AsyncExitStack() as stack:
                # The connect phase is abortable too; a server may never send headers
                opened = await run_until_cancelled(stack.enter_async_context(self.connector.open()), handle.token)
                if opened is None:
                    logger.info("Task aborted before the stream started")
                    return
                connection = opened.result()
                handle._connection = connection
                handle.task_id = connection.task_id
                if self.listener is not None:
                    self.listener.on_connected(handle)
                await receiver.consume(connection.chunks(), handle.token)
        except TransportError as e:
            handle.error = e
        finally:
            handle._connection = None
            handle.outcome = self._resolve(handle, events.end)
            self._handle = None
            logger.info("Task %s finished: %s", handle.task_id, handle.outcome.value)
            if self.listener is not None:
                if handle.outcome == TaskOutcome.FAILED:
                    self.listener.on_event(handle, TaskEvent.error(str(handle.error)))
                self.listener.on_finished(handle)

    @staticmethod
    def _resolve(handle: TaskHandle, end: StreamEnd | None) -> TaskOutcome:
        # A terminal event already received decides the outcome
        if handle.outcome is not None:
            return handle.outcome
        if handle.token.is_set:
            return TaskOutcome.ABORTED
        if handle.error is None:
            if end == StreamEnd.ENDED:
                handle.error = TransportError("Stream ended before the task finished")
            else:
                handle.error = TransportError("Connection closed unexpectedly")
        return TaskOutcome.FAILED
