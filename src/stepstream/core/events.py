"""Task event protocol shared by the server executor and the client receiver."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncGenerator

from .constants import (
    EVENT_CANCELLED,
    EVENT_COMPLETE,
    EVENT_ERROR,
    EVENT_PROGRESS,
    TERMINAL_EVENT_KINDS,
)


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T12:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class TaskEvent:
    """One step outcome flowing from server to client.

    ``step`` and ``total_steps`` are set for progress events; cancelled
    events carry the step at which the executor stopped.
    """
    kind: str
    step: int | None = None
    total_steps: int | None = None
    message: str | None = None
    timestamp: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_EVENT_KINDS

    @property
    def percent(self) -> float | None:
        """Progress percentage (0-100) for progress events, 100 for complete."""
        if self.kind == EVENT_COMPLETE:
            return 100.0
        if self.kind == EVENT_PROGRESS and self.total_steps:
            return self.step * 100 / self.total_steps
        return None

    @classmethod
    def progress(cls, step: int, total_steps: int, message: str | None = None) -> "TaskEvent":
        if message is None:
            message = f"Processing step {step} of {total_steps}..."
        return cls(
            kind=EVENT_PROGRESS, step=step, total_steps=total_steps,
            message=message, timestamp=utc_timestamp(),
        )

    @classmethod
    def complete(cls, message: str) -> "TaskEvent":
        return cls(kind=EVENT_COMPLETE, message=message, timestamp=utc_timestamp())

    @classmethod
    def cancelled(cls, step: int) -> "TaskEvent":
        return cls(kind=EVENT_CANCELLED, step=step)

    @classmethod
    def error(cls, message: str) -> "TaskEvent":
        return cls(kind=EVENT_ERROR, message=message, timestamp=utc_timestamp())

    def to_payload(self) -> dict:
        """Wire payload: camelCase keys, unset fields omitted."""
        payload: dict = {"type": self.kind}
        if self.step is not None:
            payload["step"] = self.step
        if self.total_steps is not None:
            payload["totalSteps"] = self.total_steps
        if self.message is not None:
            payload["message"] = self.message
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        return payload


# Type alias for the executor's event stream
EventStream = AsyncGenerator[TaskEvent, None]
