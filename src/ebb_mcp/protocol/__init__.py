"""Protocol layer: line framing, command encoders, response parsing and dispatch."""

from .framing import frame_command, LineFramer
from .commands import Command, CommandRequest, StepMode, build_command
from .dispatch import CommandQueue, ResponseRouter, QueueState, DEFAULT_TIMEOUT_MS
