"""Transport contract consumed by the protocol core.

A transport opens and closes the link, writes command text and reports each
complete line the device sends, in arrival order and one at a time, to a
single registered handler.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

LineHandler = Callable[[str], None]


class LineTransport(ABC):
    """Base class for line-oriented transports."""

    def __init__(self) -> None:
        self._line_handler: LineHandler | None = None

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while the link is open."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the link.

        Raises:
            TransportError: If the link cannot be opened.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the link. Safe to call when already closed."""

    @abstractmethod
    async def print(self, text: str) -> None:
        """Write ``text`` and return once it has been flushed.

        Raises:
            TransportError: If not connected or the write fails.
        """

    def set_line_handler(self, handler: LineHandler | None) -> None:
        """Register the single consumer of received lines."""
        self._line_handler = handler

    def emit_line(self, line: str) -> None:
        """Deliver one received line to the registered handler."""
        if self._line_handler is None:
            logger.debug("No line handler registered, dropping %r", line)
            return
        self._line_handler(line)
