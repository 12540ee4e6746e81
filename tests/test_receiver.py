"""Tests for the StreamReceiver read loop."""

import asyncio

from stepstream.core.cancellation import CancellationSignal
from stepstream.core.codec import encode
from stepstream.core.errors import TransportError
from stepstream.core.events import TaskEvent
from stepstream.client.receiver import StreamEnd, StreamReceiver


class _Recorder:
    def __init__(self):
        self.events: list[TaskEvent] = []
        self.ends: list[tuple] = []

    def on_event(self, event):
        self.events.append(event)

    def on_end(self, end, error):
        self.ends.append((end, error))


async def _chunks(chunks, delay=0.0):
    for chunk in chunks:
        if delay:
            await asyncio.sleep(delay)
        yield chunk


def _stream(events: list[TaskEvent]) -> bytes:
    return b"".join(encode(e) for e in events)


SEQUENCE = [TaskEvent.progress(i, 3) for i in range(1, 4)] + [TaskEvent.complete("ok")]


class TestFeed:
    def test_retains_partial_frame(self):
        recorder = _Recorder()
        receiver = StreamReceiver(recorder)
        data = _stream(SEQUENCE[:2])
        dispatched = receiver.feed(data[:-5])
        assert dispatched == SEQUENCE[:1]
        assert receiver.buffer == data[len(encode(SEQUENCE[0])):-5]
        receiver.feed(data[-5:])
        assert recorder.events == SEQUENCE[:2]
        assert receiver.buffer == b""

    def test_events_after_terminal_are_dropped(self):
        recorder = _Recorder()
        receiver = StreamReceiver(recorder)
        receiver.feed(_stream([TaskEvent.cancelled(2), TaskEvent.progress(2, 3), TaskEvent.complete("x")]))
        assert recorder.events == [TaskEvent.cancelled(2)]
        assert receiver.terminal == TaskEvent.cancelled(2)

    def test_garbage_between_frames_is_absorbed(self):
        recorder = _Recorder()
        receiver = StreamReceiver(recorder)
        data = encode(SEQUENCE[0]) + b"data: {oops\n\n" + b": ping\n\n" + encode(SEQUENCE[1])
        receiver.feed(data)
        assert recorder.events == SEQUENCE[:2]


class TestConsume:
    def test_arbitrary_chunking_preserves_order(self):
        """Every chunk size yields the same events in wire order."""
        data = _stream(SEQUENCE)
        for size in (1, 2, 3, 7, 16, 64, len(data)):
            recorder = _Recorder()
            chunks = [data[i:i + size] for i in range(0, len(data), size)]
            end = asyncio.run(StreamReceiver(recorder).consume(_chunks(chunks)))
            assert end == StreamEnd.ENDED
            assert recorder.events == SEQUENCE, f"chunk size {size}"
            assert recorder.ends == [(StreamEnd.ENDED, None)]

    def test_abort_resolves_pending_read(self):
        """Setting the token while a read is pending ends with ABORTED, not a hang."""
        closed = []

        async def stalled():
            try:
                yield encode(SEQUENCE[0])
                await asyncio.sleep(30)
                yield encode(SEQUENCE[1])
            finally:
                closed.append(True)

        async def scenario():
            recorder = _Recorder()
            token = CancellationSignal()
            asyncio.get_running_loop().call_later(0.02, token.set)
            end = await asyncio.wait_for(StreamReceiver(recorder).consume(stalled(), token), 2.0)
            return end, recorder

        end, recorder = asyncio.run(scenario())
        assert end == StreamEnd.ABORTED
        assert recorder.events == [SEQUENCE[0]]
        assert recorder.ends == [(StreamEnd.ABORTED, None)]
        assert closed == [True]

    def test_token_already_set(self):
        async def scenario():
            token = CancellationSignal()
            token.set()
            recorder = _Recorder()
            end = await StreamReceiver(recorder).consume(_chunks([_stream(SEQUENCE)]), token)
            return end, recorder

        end, recorder = asyncio.run(scenario())
        assert end == StreamEnd.ABORTED
        assert recorder.events == []

    def test_transport_error_is_failed(self):
        async def broken():
            yield encode(SEQUENCE[0])
            raise TransportError("connection reset")

        recorder = _Recorder()
        end = asyncio.run(StreamReceiver(recorder).consume(broken()))
        assert end == StreamEnd.FAILED
        assert recorder.events == [SEQUENCE[0]]
        (end_kind, error), = recorder.ends
        assert isinstance(error, TransportError)

    def test_unterminated_tail_is_discarded(self):
        recorder = _Recorder()
        data = encode(SEQUENCE[0]) + b'data: {"type":"progress"'
        end = asyncio.run(StreamReceiver(recorder).consume(_chunks([data])))
        assert end == StreamEnd.ENDED
        assert recorder.events == [SEQUENCE[0]]
