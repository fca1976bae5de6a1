"""Line framing for the EBB's ASCII serial protocol.

Host to device, each command is one line terminated by a carriage return::

    EM,1,1\\r

Device to host, replies are terminated by either ``\\r\\n`` or ``\\n\\r``
depending on the command and firmware version::

    4,16\\r\\n
    OK\\r\\n
    3E\\n\\r

:class:`LineFramer` reassembles those lines from arbitrarily chunked bytes.
"""

from __future__ import annotations

import re

COMMAND_TERMINATOR = "\r"
ENCODING = "ascii"

LINE_BREAK = re.compile(r"\r\n|\n\r")


def frame_command(text: str) -> str:
    """Append the command terminator."""
    return text + COMMAND_TERMINATOR


class LineFramer:
    """Incremental splitter turning received bytes into complete lines.

    Usage::

        framer = LineFramer()
        framer.feed(b"4,1")      # -> []
        framer.feed(b"6\\r\\nOK\\r\\n")  # -> ["4,16", "OK"]
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last complete line."""
        return self._buffer

    def feed(self, data: bytes) -> list[str]:
        """Add received bytes and return every line they complete."""
        self._buffer += data.decode(ENCODING, errors="replace")
        *lines, self._buffer = LINE_BREAK.split(self._buffer)
        return lines

    def reset(self) -> None:
        self._buffer = ""
