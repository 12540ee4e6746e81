"""One-shot cancellation signal shared by a task's writer and its readers."""

import asyncio
from typing import Awaitable


class CancellationSignal:
    """Monotonic false -> true latch.

    ``set()`` may be called from any thread, any number of times; only the
    first call has an effect. Readers poll ``is_set`` or await ``wait()``.
    """

    def __init__(self) -> None:
        self._set = False
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_set(self) -> bool:
        return self._set

    def set(self) -> bool:
        """Set the signal. Returns True only for the call that set it."""
        if self._set:
            return False
        self._set = True
        event, loop = self._event, self._loop
        if event is not None and loop is not None and not loop.is_closed():
            if _running_loop() is loop:
                event.set()
            else:
                loop.call_soon_threadsafe(event.set)
        return True

    async def wait(self) -> None:
        """Suspend until the signal is set."""
        if self._set:
            return
        if self._event is None:
            self._event = asyncio.Event()
            self._loop = asyncio.get_running_loop()
            # set() may have run between the check above and binding the loop
            if self._set:
                self._event.set()
        await self._event.wait()

    async def wait_for(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds. Returns True if the signal is set."""
        try:
            await asyncio.wait_for(self.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self._set


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


async def run_until_cancelled(awaitable: Awaitable, signal: CancellationSignal) -> asyncio.Future | None:
    """Run ``awaitable`` until it finishes or ``signal`` is set.

    Returns the finished future (call ``.result()`` to get the value or
    re-raise its error), or None if the signal won. A loser is cancelled and
    awaited before returning. The signal wins a tie.
    """
    main = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({main, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [fut for fut in (main, stop) if not fut.done()]
        for fut in pending:
            fut.cancel()
        if pending:
            await asyncio.wait(pending)

    if stop in done:
        if not main.cancelled():
            main.exception()
        return None
    return main
