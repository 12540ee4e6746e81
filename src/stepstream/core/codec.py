"""Frame codec: one TaskEvent <-> one ``data: <json>\\n\\n`` frame.

Pure and synchronous. ``decode`` is incremental and resynchronizing: it
inspects only the front of a byte buffer, reports how many bytes it used,
and drops frames it cannot parse instead of raising.
"""

import json
import logging

from .constants import (
    EVENT_CANCELLED,
    EVENT_PROGRESS,
    FRAME_FIELD,
    FRAME_PREFIX,
    FRAME_TERMINATOR,
    FRAME_TERMINATORS,
    WIRE_EVENT_KINDS,
)
from .errors import MalformedFrame
from .events import TaskEvent

logger = logging.getLogger(__name__)


def encode(event: TaskEvent) -> bytes:
    """Encode an event as a single self-terminating frame."""
    payload = json.dumps(event.to_payload(), separators=(",", ":"), ensure_ascii=False)
    return FRAME_PREFIX + payload.encode("utf-8") + FRAME_TERMINATOR


def decode(buffer: bytes) -> tuple[TaskEvent | None, int]:
    """Extract zero or one frame from the front of ``buffer``.

    Returns ``(event, consumed)``. ``consumed == 0`` means no complete frame
    is present yet; the caller keeps the buffer and reads more. A complete
    but unparseable frame returns ``(None, consumed)`` so the caller can
    discard it and continue with the remainder.
    """
    end, size = _find_terminator(buffer)
    if end < 0:
        return None, 0

    consumed = end + size
    frame = bytes(buffer[:end])
    for candidate in _candidate_payloads(frame):
        try:
            return parse_payload(candidate), consumed
        except MalformedFrame as e:
            logger.debug("Dropping malformed frame payload: %s", e)
    return None, consumed


def parse_payload(raw: bytes) -> TaskEvent:
    """Parse and validate one JSON payload. Raises MalformedFrame."""
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedFrame(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedFrame("payload is not an object")

    kind = data.get("type")
    if kind not in WIRE_EVENT_KINDS:
        raise MalformedFrame(f"unknown event type: {kind!r}")

    step = data.get("step")
    total_steps = data.get("totalSteps")
    message = data.get("message")
    timestamp = data.get("timestamp")

    if kind in (EVENT_PROGRESS, EVENT_CANCELLED) and not _is_int(step):
        raise MalformedFrame(f"{kind} event without integer step")
    if kind == EVENT_PROGRESS and not _is_int(total_steps):
        raise MalformedFrame("progress event without integer totalSteps")
    if step is not None and not _is_int(step):
        raise MalformedFrame("step is not an integer")
    if total_steps is not None and not _is_int(total_steps):
        raise MalformedFrame("totalSteps is not an integer")
    if message is not None and not isinstance(message, str):
        raise MalformedFrame("message is not a string")
    if timestamp is not None and not isinstance(timestamp, str):
        raise MalformedFrame("timestamp is not a string")

    return TaskEvent(
        kind=kind, step=step, total_steps=total_steps,
        message=message, timestamp=timestamp,
    )


def _find_terminator(buffer: bytes) -> tuple[int, int]:
    """Position and length of the earliest frame terminator, or (-1, 0)."""
    found = (-1, 0)
    for terminator in FRAME_TERMINATORS:
        index = buffer.find(terminator)
        if index >= 0 and (found[0] < 0 or index < found[0]):
            found = (index, len(terminator))
    return found


def _candidate_payloads(frame: bytes) -> list[bytes]:
    """Payloads to try for one frame, most likely first.

    Each ``data:`` line is a candidate (last line first). Comment lines
    (keep-alive pings) and other fields are ignored. As a last resort the
    text after the final ``data: `` marker is tried, which recovers a valid
    frame glued onto a truncated one.
    """
    candidates = []
    for line in frame.split(b"\n"):
        line = line.rstrip(b"\r")
        if line.startswith(FRAME_FIELD):
            value = line[len(FRAME_FIELD):]
            if value.startswith(b" "):
                value = value[1:]
            candidates.append(value)
    candidates.reverse()

    marker = frame.rfind(FRAME_PREFIX)
    if marker > 0:
        candidates.append(frame[marker + len(FRAME_PREFIX):].rstrip(b"\r"))
    return candidates


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
