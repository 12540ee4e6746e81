"""Step executor: drives one task through its steps with cooperative cancellation.

Each step:
- checks the cancellation signal before starting
- runs its simulated work, racing it against the signal
- yields exactly one event for its outcome

Faults inside a step propagate unchanged; no event is yielded for them.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..core.cancellation import CancellationSignal, run_until_cancelled
from ..core.constants import COMPLETE_MESSAGE, DEFAULT_STEP_DURATION, DEFAULT_TOTAL_STEPS
from ..core.events import EventStream, TaskEvent

logger = logging.getLogger(__name__)

StepWork = Callable[[int], Awaitable[None]]


@dataclass
class TaskState:
    """Server-side state of one task. Lives only as long as its connection."""
    total_steps: int = DEFAULT_TOTAL_STEPS
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    current_step: int = 1
    signal: CancellationSignal = field(default_factory=CancellationSignal)
    started_at: float = field(default_factory=time.monotonic)
    finished: bool = False

    @property
    def cancelled(self) -> bool:
        return self.signal.is_set


class StepExecutor:
    """Runs ``state.total_steps`` sequential steps, yielding one event per outcome."""

    def __init__(
        self,
        state: TaskState,
        step_duration: float = DEFAULT_STEP_DURATION,
        work: StepWork | None = None,
    ):
        if state.total_steps < 1:
            raise ValueError(f"total_steps must be >= 1, got {state.total_steps}")
        self.state = state
        self.step_duration = step_duration
        self._work = work or self._sleep

    async def run(self) -> EventStream:
        state = self.state
        total = state.total_steps

        for step in range(1, total + 1):
            state.current_step = step

            if state.signal.is_set:
                yield self._stop(step)
                return

            if not await self._run_step(step):
                yield self._stop(step)
                return

            logger.debug("Completed step %d/%d (task %s)", step, total, state.task_id)
            yield TaskEvent.progress(step, total)

        state.finished = True
        yield TaskEvent.complete(COMPLETE_MESSAGE)

    async def _run_step(self, step: int) -> bool:
        """Run one step's work. Returns False if the signal interrupted it."""
        finished = await run_until_cancelled(self._work(step), self.state.signal)
        if finished is None:
            return False
        finished.result()
        return True

    def _stop(self, step: int) -> TaskEvent:
        logger.warning("Stopping at step %d due to cancellation (task %s)", step, self.state.task_id)
        self.state.finished = True
        return TaskEvent.cancelled(step)

    async def _sleep(self, step: int) -> None:
        await asyncio.sleep(self.step_duration)
