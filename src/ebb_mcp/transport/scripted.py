"""In-memory transport that answers commands from a script.

Stands in for the board in tests and dry runs::

    transport = ScriptedTransport({"QE": ["4,16", "OK"], "QG": "3E"})
    board = EiBotBoard(transport)

Lookups use the command text without its terminator: first the full text
(``"SP,0,1000"``), then the bare mnemonic (``"SP"``). Commands with no entry
get no reply. A callable may be passed instead of a mapping.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Union

from ..errors import TransportError
from ..protocol.framing import COMMAND_TERMINATOR
from .base import LineTransport

logger = logging.getLogger(__name__)

Reply = Union[str, Sequence[str]]
Responder = Union[Mapping[str, Reply], Callable[[str], Reply]]


class ScriptedTransport(LineTransport):
    """Records written commands and replies from a script.

    Args:
        responses: Mapping from command text (or mnemonic) to reply line(s),
            or a callable taking the command text and returning them.
        delay: Seconds to wait before delivering each reply, or a callable
            returning the delay for a command. 0 replies during the write.
    """

    def __init__(
        self,
        responses: Responder | None = None,
        delay: float | Callable[[str], float] = 0.0,
    ) -> None:
        super().__init__()
        self._responses = responses if responses is not None else {}
        self._delay = delay
        self._connected = False
        self.written: list[str] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.info("Scripted transport connected")

    async def disconnect(self) -> None:
        self._connected = False

    async def print(self, text: str) -> None:
        if not self._connected:
            raise TransportError("Not connected")
        self.written.append(text)

        command = text.removesuffix(COMMAND_TERMINATOR)
        lines = self._reply_for(command)
        if not lines:
            return

        delay = self._delay(command) if callable(self._delay) else self._delay
        if delay > 0:
            asyncio.get_running_loop().call_later(delay, self.feed, *lines)
        else:
            self.feed(*lines)

    def feed(self, *lines: str) -> None:
        """Deliver lines as if the device had sent them."""
        for line in lines:
            self.emit_line(line)

    def _reply_for(self, command: str) -> list[str]:
        if callable(self._responses):
            reply = self._responses(command)
        elif command in self._responses:
            reply = self._responses[command]
        else:
            reply = self._responses.get(command.split(",", 1)[0], ())
        if reply is None:
            return []
        if isinstance(reply, str):
            return [reply]
        return list(reply)
