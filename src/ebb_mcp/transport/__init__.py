"""Line transports: the byte-level link to the board."""

from .base import LineTransport, LineHandler
from .scripted import ScriptedTransport
from .serial_connection import SerialConnection, BAUD_RATE
