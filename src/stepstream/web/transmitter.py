"""Stream transmitter: executor events -> encoded frames on the output stream."""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable

from ..core.codec import encode
from ..core.errors import ExecutorFault
from ..server.executor import StepExecutor

logger = logging.getLogger(__name__)

# Errors a write raises once the peer has gone away
DISCONNECT_ERRORS = (OSError, EOFError)


class StreamTransmitter:
    """Frames a StepExecutor's events in emission order.

    Stops after the first terminal event. A peer disconnect sets the task's
    cancellation signal and stops production silently; an executor fault is
    re-raised as ExecutorFault without writing anything for it.
    """

    def __init__(self, executor: StepExecutor, on_close: Callable[[], None] | None = None):
        self.executor = executor
        self._on_close = on_close
        self.terminated = False
        self.faulted = False

    @property
    def state(self):
        return self.executor.state

    async def frames(self) -> AsyncIterator[bytes]:
        """Async generator of encoded frames, suitable as a streaming body."""
        events = self.executor.run()
        try:
            async for event in events:
                if event.is_terminal:
                    self.terminated = True
                yield encode(event)
                if event.is_terminal:
                    break
        except asyncio.CancelledError:
            self._disconnected()
            raise
        except Exception as e:
            self.faulted = True
            logger.exception("Executor fault in task %s at step %d", self.state.task_id, self.state.current_step)
            raise ExecutorFault(f"step {self.state.current_step} failed: {e}") from e
        finally:
            await events.aclose()
            if not (self.terminated or self.faulted):
                self._disconnected()
            self._close()

    async def pump(
        self,
        write: Callable[[bytes], Awaitable[None]],
        close: Callable[[], Awaitable[None]],
    ) -> None:
        """Push frames through ``write``, flushing each one, then ``close``.

        A write failing with a disconnect error ends production quietly.
        """
        frames = self.frames()
        try:
            async for frame in frames:
                try:
                    await write(frame)
                except DISCONNECT_ERRORS as e:
                    logger.info("Peer went away during write (task %s): %s", self.state.task_id, e)
                    break
        finally:
            await frames.aclose()
            await close()

    def _disconnected(self) -> None:
        if self.state.signal.set():
            logger.warning(
                "Request was cancelled by client (task %s, step %d)",
                self.state.task_id, self.state.current_step,
            )

    def _close(self) -> None:
        if self._on_close is not None:
            callback, self._on_close = self._on_close, None
            callback()
