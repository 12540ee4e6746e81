"""Stream receiver: raw chunks -> reassembled frames -> dispatched events."""

import enum
import logging
from typing import AsyncIterator, Protocol

from ..core.cancellation import CancellationSignal, run_until_cancelled
from ..core.codec import decode
from ..core.errors import TransportError
from ..core.events import TaskEvent

logger = logging.getLogger(__name__)


class StreamEnd(str, enum.Enum):
    """How a receive loop finished."""
    ENDED = "ended"        # server closed the stream
    ABORTED = "aborted"    # the local cancellation token was set
    FAILED = "failed"      # transport fault


class EventHandler(Protocol):
    def on_event(self, event: TaskEvent) -> None: ...

    def on_end(self, end: StreamEnd, error: Exception | None) -> None: ...


class StreamReceiver:
    """Incremental frame reassembly for one stream.

    ``buffer`` holds bytes not yet consumed by the codec. Events are
    dispatched in wire order; anything after the first terminal event is
    dropped.
    """

    def __init__(self, handler: EventHandler):
        self.handler = handler
        self.buffer = b""
        self.terminal: TaskEvent | None = None

    def feed(self, chunk: bytes) -> list[TaskEvent]:
        """Append a chunk and dispatch every complete frame now in the buffer."""
        self.buffer += chunk
        dispatched = []
        while True:
            event, consumed = decode(self.buffer)
            if consumed == 0:
                break
            self.buffer = self.buffer[consumed:]
            if event is None:
                continue
            if self.terminal is not None:
                logger.debug("Dropping %s event received after terminal event", event.kind)
                continue
            if event.is_terminal:
                self.terminal = event
            self.handler.on_event(event)
            dispatched.append(event)
        return dispatched

    async def consume(
        self,
        chunks: AsyncIterator[bytes],
        token: CancellationSignal | None = None,
    ) -> StreamEnd:
        """Read ``chunks`` until the stream ends, fails, or ``token`` is set.

        The handler's ``on_end`` is called exactly once with the outcome.
        """
        token = token or CancellationSignal()
        iterator = chunks.__aiter__()
        end, error = StreamEnd.ENDED, None
        try:
            while True:
                if token.is_set:
                    end = StreamEnd.ABORTED
                    break
                read = await run_until_cancelled(iterator.__anext__(), token)
                if read is None:
                    end = StreamEnd.ABORTED
                    break
                try:
                    chunk = read.result()
                except StopAsyncIteration:
                    break
                except (TransportError, ConnectionError, OSError) as e:
                    end, error = StreamEnd.FAILED, e
                    break
                self.feed(chunk)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except (TransportError, ConnectionError, OSError, RuntimeError) as e:
                    logger.debug("Ignoring error while closing stream: %s", e)

        if self.buffer.strip():
            logger.debug("Discarding %d unterminated bytes at end of stream", len(self.buffer))
        self.handler.on_end(end, error)
        return end
