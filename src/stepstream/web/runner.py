"""Process-local registry of live tasks.

An entry exists only while its stream is open: routes register a TaskState
when a connection is accepted and the transmitter releases it when the
stream closes. Nothing survives the connection.
"""

import threading
import time
from dataclasses import dataclass

from ..server.executor import TaskState


@dataclass(frozen=True)
class TaskSnapshot:
    """Immutable, thread-safe view of a live task."""
    task_id: str
    current_step: int
    total_steps: int
    cancelled: bool
    age_s: float

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "cancelled": self.cancelled,
            "age_s": self.age_s,
        }


_tasks: dict[str, TaskState] = {}
_tasks_lock = threading.Lock()


def register_task(total_steps: int) -> TaskState:
    """Create and register the state for a newly accepted connection."""
    state = TaskState(total_steps=total_steps)
    with _tasks_lock:
        _tasks[state.task_id] = state
    return state


def release_task(task_id: str) -> None:
    """Drop a task's state once its stream has closed."""
    with _tasks_lock:
        _tasks.pop(task_id, None)


def get_task(task_id: str) -> TaskState | None:
    """Get a live task's state, or None."""
    with _tasks_lock:
        return _tasks.get(task_id)


def cancel_task(task_id: str) -> bool:
    """Set a live task's cancellation signal. Returns True if the task was found."""
    state = get_task(task_id)
    if state is None:
        return False
    state.signal.set()
    return True


def list_tasks() -> list[TaskSnapshot]:
    """Snapshots of all live tasks, oldest first."""
    now = time.monotonic()
    with _tasks_lock:
        states = sorted(_tasks.values(), key=lambda s: s.started_at)
    return [
        TaskSnapshot(
            task_id=s.task_id,
            current_step=s.current_step,
            total_steps=s.total_steps,
            cancelled=s.cancelled,
            age_s=round(now - s.started_at, 3),
        )
        for s in states
    ]
