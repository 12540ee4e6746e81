"""Task routes: cancellable step stream, out-of-band cancel, live task list."""

import logging

from fastapi import APIRouter, HTTPException, Query
from sse_starlette.sse import EventSourceResponse

from ...core.config import load_defaults, task_settings
from ...core.constants import TASK_ID_HEADER
from ...server.executor import StepExecutor
from ..runner import cancel_task, list_tasks, register_task, release_task
from ..transmitter import StreamTransmitter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tasks"])

# Keep-alive comment interval; the client codec drops comment frames
PING_INTERVAL_S = 15


@router.get("/slow")
async def slow_task(total_steps: int | None = Query(None, ge=1)):
    """Start a task and stream one frame per step outcome."""
    config = load_defaults()
    try:
        settings = task_settings(config, total_steps=total_steps)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    state = register_task(settings.total_steps)
    logger.info("Accepted task %s (%d steps)", state.task_id, state.total_steps)

    def on_close():
        release_task(state.task_id)
        outcome = "cancelled" if state.cancelled else ("completed" if state.finished else "failed")
        logger.info("Task %s finished: %s at step %d", state.task_id, outcome, state.current_step)

    executor = StepExecutor(state, step_duration=settings.step_duration)
    transmitter = StreamTransmitter(executor, on_close=on_close)

    return EventSourceResponse(
        transmitter.frames(),
        headers={"Cache-Control": "no-cache", TASK_ID_HEADER: state.task_id},
        ping=PING_INTERVAL_S,
        sep="\n",
    )


@router.post("/slow/{task_id}/cancel")
async def cancel_slow_task(task_id: str):
    """Ask a live task to stop; its stream stays open for the acknowledgement."""
    if not cancel_task(task_id):
        raise HTTPException(status_code=404, detail=f"Unknown task: {task_id}")
    logger.info("Cancellation requested for task %s", task_id)
    return {"task_id": task_id, "cancelled": True}


@router.get("/tasks")
async def tasks():
    """List live tasks."""
    return {"tasks": [snap.to_dict() for snap in list_tasks()]}
