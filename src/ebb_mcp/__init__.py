"""Command/response client and MCP server for the EiBotBoard (EBB).

The EBB is the controller inside the AxiDraw, EggBot and WaterColorBot
pen plotters. See https://evil-mad.github.io/EggBot/ebb.html
"""

from .board import EiBotBoard
from .errors import (
    EBBError,
    ValidationError,
    ProtocolError,
    CommandTimeoutError,
    TransportError,
)
from .protocol.commands import (
    Command,
    StepMode,
    PEN_DOWN,
    PEN_UP,
)

__version__ = "2.0.0"
__all__ = [
    "EiBotBoard",
    "EBBError",
    "ValidationError",
    "ProtocolError",
    "CommandTimeoutError",
    "TransportError",
    "Command",
    "StepMode",
    "PEN_DOWN",
    "PEN_UP",
]
