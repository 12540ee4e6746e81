"""Task console: the client-facing operation surface.

Turns bridge callbacks into an append-only log of LogEntry records and a
progress percentage. Rendering is left to the caller (see ``cli/run_cmd.py``).
"""

import itertools
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..core.constants import (
    EVENT_CANCELLED,
    EVENT_COMPLETE,
    EVENT_ERROR,
    EVENT_PROGRESS,
    LOG_ERROR,
    LOG_INFO,
    LOG_PROGRESS,
    LOG_SUCCESS,
    LOG_WARNING,
)
from ..core.errors import AlreadyRunning, TaskActiveError
from ..core.events import TaskEvent
from .bridge import CancellationBridge, TaskHandle, TaskOutcome
from .transport import Connector


@dataclass(frozen=True)
class LogEntry:
    """One line of the task log. Never mutated once appended."""
    id: int
    timestamp: str  # local HH:MM:SS.mmm
    type: str       # info | progress | success | error | warning
    message: str


def display_time(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"


class TaskConsole:
    """start_task / cancel_task / stop_task / clear_log over a CancellationBridge."""

    def __init__(
        self,
        connector: Connector,
        on_change: Callable[["TaskConsole"], None] | None = None,
        stop_timeout: float = 5.0,
    ):
        self.bridge = CancellationBridge(connector, listener=self, stop_timeout=stop_timeout)
        self._on_change = on_change
        self._logs: list[LogEntry] = []
        self._ids = itertools.count()
        self.progress = 0.0
        self.last_outcome: TaskOutcome | None = None

    @property
    def logs(self) -> tuple[LogEntry, ...]:
        return tuple(self._logs)

    @property
    def is_running(self) -> bool:
        return self.bridge.active

    async def start_task(self) -> TaskOutcome:
        """Run one task to its terminal outcome. Raises AlreadyRunning."""
        if self.bridge.active:
            raise AlreadyRunning("A task is already running")
        self._reset()
        self.add_log(LOG_INFO, "Starting slow request...")
        handle = self.bridge.begin()
        return await handle.wait()

    def cancel_task(self) -> bool:
        """Abort the running task. No-op (False) if none is running."""
        if not self.bridge.active or self.bridge.handle.done or self.bridge.handle.token.is_set:
            return False
        self.add_log(LOG_INFO, "Cancelling request...")
        return self.bridge.cancel()

    async def stop_task(self) -> bool:
        """Ask the server to stop and wait for its acknowledgement."""
        handle = self.bridge.handle
        if handle is None or handle.done or handle.token.is_set:
            return False
        self.add_log(LOG_INFO, "Requesting server-side stop...")
        return await self.bridge.request_stop()

    def clear_log(self) -> None:
        """Clear the log and progress. Raises TaskActiveError while running."""
        if self.bridge.active:
            raise TaskActiveError("Cannot clear the log while a task is running")
        self._logs.clear()
        self.progress = 0.0
        self._changed()

    def add_log(self, type_: str, message: str) -> LogEntry:
        entry = LogEntry(id=next(self._ids), timestamp=display_time(), type=type_, message=message)
        self._logs.append(entry)
        self._changed()
        return entry

    # ── Bridge listener ───────────────────────────────────────────

    def on_connected(self, handle: TaskHandle) -> None:
        self.add_log(LOG_INFO, "Connection established, receiving stream...")

    def on_event(self, handle: TaskHandle, event: TaskEvent) -> None:
        if event.kind == EVENT_PROGRESS:
            self.progress = event.percent
            self.add_log(LOG_PROGRESS, event.message or f"Step {event.step} of {event.total_steps}")
        elif event.kind == EVENT_COMPLETE:
            self.progress = 100.0
            self.add_log(LOG_SUCCESS, event.message or "Completed")
        elif event.kind == EVENT_CANCELLED:
            self.add_log(LOG_WARNING, f"Server acknowledged cancellation at step {event.step}")
        elif event.kind == EVENT_ERROR:
            self.add_log(LOG_ERROR, f"Error: {event.message}")

    def on_finished(self, handle: TaskHandle) -> None:
        self.last_outcome = handle.outcome
        if handle.outcome == TaskOutcome.ABORTED:
            self.add_log(LOG_WARNING, "Request was cancelled by user")
        elif handle.outcome != TaskOutcome.FAILED:
            self.add_log(LOG_INFO, "Stream ended")

    def _reset(self) -> None:
        self._logs.clear()
        self._ids = itertools.count()
        self.progress = 0.0
        self.last_outcome = None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)
