"""Terminal output for soma.

Every user-facing line and every diagnostic goes through :func:`message`.
Verbosity and colour are process-wide settings held by the
:class:`OutputManager` returned from :func:`get_output`.
"""

import sys
from enum import Enum, IntEnum


class MessageType(Enum):
    """Kind of a message; decides its stream and colour."""

    NORMAL = "normal"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    DEBUG = "debug"


class VerbosityLevel(IntEnum):
    """Minimum ``-v`` count at which a message is shown."""

    ALWAYS = 0
    VERBOSE = 1
    EXTRA_VERBOSE = 2
    DEBUG = 3


_COLORS = {
    MessageType.NORMAL: "",
    MessageType.INFO: "\033[36m",
    MessageType.SUCCESS: "\033[32m",
    MessageType.WARNING: "\033[33m",
    MessageType.ERROR: "\033[31m",
    MessageType.DEBUG: "\033[90m",
}
_RESET = "\033[0m"

# Sent to stderr so stdout stays clean for listings
_STDERR_TYPES = (MessageType.WARNING, MessageType.ERROR)


class OutputManager:
    """Holds the output settings for the running process."""

    def __init__(self, verbosity: int = 0, use_color: bool = False):
        self.verbosity = verbosity
        self.use_color = use_color

    def should_show(self, level: VerbosityLevel) -> bool:
        return self.verbosity >= level

    def format(self, text: str, message_type: MessageType) -> str:
        color = _COLORS[message_type]
        if not self.use_color or not color or not text:
            return text
        return f"{color}{text}{_RESET}"

    def write(self, text: str, message_type: MessageType, level: VerbosityLevel) -> None:
        if not self.should_show(level):
            return
        stream = sys.stderr if message_type in _STDERR_TYPES else sys.stdout
        print(self.format(text, message_type), file=stream)


_output = OutputManager()


def get_output() -> OutputManager:
    """Return the process-wide output manager."""
    return _output


def message(
    text: str,
    message_type: MessageType = MessageType.NORMAL,
    level: VerbosityLevel = VerbosityLevel.ALWAYS,
) -> None:
    """Print *text* if the current verbosity allows *level*."""
    _output.write(text, message_type, level)
