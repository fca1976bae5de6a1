"""Serial connection to the EBB over its USB CDC virtual COM port.

Built on ``pyserial-asyncio``: bytes arrive in :class:`_LineProtocol`, are
reassembled into lines by :class:`~ebb_mcp.protocol.framing.LineFramer`, and
are handed to the registered line handler one at a time on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import serial
import serial_asyncio

from ..errors import TransportError
from ..protocol.framing import ENCODING, LineFramer
from .base import LineTransport

logger = logging.getLogger(__name__)

BAUD_RATE = 115200


@dataclass
class PortInfo:
    """Settings of the open serial port."""

    port: str = ""
    baudrate: int = BAUD_RATE


class _LineProtocol(asyncio.Protocol):
    """asyncio protocol feeding received bytes through a line framer."""

    def __init__(self, connection: SerialConnection) -> None:
        self._connection = connection
        self._framer = LineFramer()
        self._can_write = asyncio.Event()
        self._can_write.set()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        ser = getattr(transport, "serial", None)
        if ser is not None:
            ser.reset_input_buffer()

    def data_received(self, data: bytes) -> None:
        for line in self._framer.feed(data):
            logger.debug("rx: %s", line)
            self._connection.emit_line(line)

    def connection_lost(self, exc: Exception | None) -> None:
        self._can_write.set()
        self._connection._on_connection_lost(exc)

    def pause_writing(self) -> None:
        self._can_write.clear()

    def resume_writing(self) -> None:
        self._can_write.set()

    async def drain(self) -> None:
        await self._can_write.wait()


class SerialConnection(LineTransport):
    """Manages the serial link to the board.

    Usage::

        conn = SerialConnection("/dev/ttyACM0")
        board = EiBotBoard(conn)
        await board.connect()
        ...
        await board.disconnect()
    """

    def __init__(self, port: str, baudrate: int = BAUD_RATE) -> None:
        super().__init__()
        self._port_info = PortInfo(port=port, baudrate=baudrate)
        self._transport: asyncio.Transport | None = None
        self._protocol: _LineProtocol | None = None

    @property
    def connected(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    @property
    def port_info(self) -> PortInfo:
        return self._port_info

    async def connect(self) -> None:
        """Open the serial port.

        Raises:
            TransportError: If the port cannot be opened.
        """
        if self.connected:
            return

        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await serial_asyncio.create_serial_connection(
                loop,
                lambda: _LineProtocol(self),
                self._port_info.port,
                baudrate=self._port_info.baudrate,
            )
        except (serial.SerialException, OSError) as e:
            raise TransportError(
                f"Could not open EBB serial port {self._port_info.port!r}: {e}"
            ) from e

        self._transport = transport
        self._protocol = protocol
        logger.info(
            "Connected to %s at %d baud",
            self._port_info.port,
            self._port_info.baudrate,
        )

    async def disconnect(self) -> None:
        """Close the serial port."""
        if self._transport is None:
            return
        try:
            self._transport.close()
        except (serial.SerialException, OSError) as e:
            logger.warning("Error closing serial port: %s", e)
        finally:
            self._transport = None
            self._protocol = None
            logger.info("Disconnected from %s", self._port_info.port)

    async def print(self, text: str) -> None:
        """Write command text and wait until the write buffer has drained."""
        if not self.connected or self._protocol is None:
            raise TransportError("Serial port is not connected")

        logger.debug("tx: %r", text)
        try:
            self._transport.write(text.encode(ENCODING))
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Serial write failed: {e}") from e
        await self._protocol.drain()

        if not self.connected:
            raise TransportError("Serial port closed during write")

    def _on_connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("Serial connection lost: %s", exc)
        self._transport = None
        self._protocol = None
