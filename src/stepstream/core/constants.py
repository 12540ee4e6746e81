"""Constants for the stepstream task protocol."""


# Event kinds carried in the "type" field of a frame payload
EVENT_PROGRESS = "progress"
EVENT_COMPLETE = "complete"
EVENT_CANCELLED = "cancelled"
EVENT_ERROR = "error"  # client-side only, never written to the wire

WIRE_EVENT_KINDS = (EVENT_PROGRESS, EVENT_COMPLETE, EVENT_CANCELLED)
TERMINAL_EVENT_KINDS = (EVENT_COMPLETE, EVENT_CANCELLED)

# Framing: "data: <json>\n\n"
FRAME_PREFIX = b"data: "
FRAME_FIELD = b"data:"
FRAME_TERMINATOR = b"\n\n"
# Blank-line endings accepted when reading; CRLF servers use the first two
FRAME_TERMINATORS = (b"\r\n\r\n", b"\n\r\n", FRAME_TERMINATOR)
MEDIA_TYPE = "text/event-stream"
TASK_ID_HEADER = "X-Task-Id"

# Task defaults
DEFAULT_TOTAL_STEPS = 10
DEFAULT_STEP_DURATION = 1.0  # seconds
DEFAULT_MAX_TOTAL_STEPS = 1000

COMPLETE_MESSAGE = "All steps completed successfully!"

# Client log entry types
LOG_INFO = "info"
LOG_PROGRESS = "progress"
LOG_SUCCESS = "success"
LOG_ERROR = "error"
LOG_WARNING = "warning"
