"""Exception hierarchy for stepstream."""


class StepStreamError(Exception):
    """Base class for all stepstream errors."""


class TransportError(StepStreamError):
    """Connection-level failure: I/O error, bad status, or a stream that
    ended without a terminal event."""


class ExecutorFault(StepStreamError):
    """An unexpected failure inside step processing.

    Raised by the transmitter so the transport closes the stream abruptly.
    The original exception is chained as ``__cause__``.
    """


class MalformedFrame(StepStreamError):
    """A frame payload could not be parsed. Never escapes the codec."""


class AlreadyRunning(StepStreamError):
    """A task is already active on this bridge or console."""


class TaskActiveError(StepStreamError):
    """The operation is not allowed while a task is active."""
