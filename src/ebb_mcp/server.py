"""MCP server entry point for the EiBotBoard.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .board import EiBotBoard
from .errors import ValidationError
from .protocol.commands import StepMode
from .protocol.dispatch import DEFAULT_TIMEOUT_MS
from .transport.serial_connection import BAUD_RATE, SerialConnection
from .utils.adc import adc_to_volts

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "ebb-mcp",
    instructions="MCP server for the EiBotBoard (EBB) pen plotter controller",
)

# Global connection state
_board: EiBotBoard | None = None
_port: str | None = None
_old_board = False


def _get_board() -> EiBotBoard:
    """Get the connected board, raising if not connected."""
    if _board is None or not _board.connected:
        raise RuntimeError(
            "Not connected to board. Use the 'connect' tool first."
        )
    return _board


def _step_mode(name: str) -> StepMode:
    try:
        return StepMode[name.upper()]
    except KeyError:
        raise ValidationError(
            f"Unknown step mode '{name}'. Valid: {[m.name for m in StepMode]}"
        ) from None


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
async def connect(
    port: str,
    baudrate: int = BAUD_RATE,
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
    old_board: bool = False,
) -> dict[str, Any]:
    """Open the serial connection to the EBB.

    Sends a version query to confirm the board answers.

    Args:
        port: Serial port path, e.g. /dev/ttyACM0 or COM3.
        baudrate: Serial baud rate (default 115200).
        timeout_ms: Reply timeout per command in milliseconds.
        old_board: True for EBB v2.2 and older (affects supply voltage readings).
    """
    global _board, _port, _old_board
    if _board is not None and _board.connected:
        return {"connected": True, "message": "Already connected", "port": _port}

    board = EiBotBoard(SerialConnection(port, baudrate), timeout_ms=timeout_ms)
    await board.connect()
    _board, _port, _old_board = board, port, old_board

    version = await board.query_version()
    return {"connected": True, "port": port, "firmware": version}


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Close the serial connection to the board."""
    global _board, _port
    if _board is None:
        return {"disconnected": True}
    await _board.disconnect()
    _board = None
    _port = None
    return {"disconnected": True}


@mcp.tool()
async def get_device_info() -> dict[str, Any]:
    """Retrieve the firmware version string and the board nickname."""
    board = _get_board()
    return {
        "firmware": await board.query_version(),
        "nickname": await board.query_nickname(),
        "port": _port,
    }


@mcp.tool()
async def get_status() -> dict[str, Any]:
    """Read general status, motor status, step position and pen state."""
    board = _get_board()
    general = await board.query_general()
    motors = await board.query_motors()
    position = await board.query_step_position()
    return {
        "general": general.to_dict(),
        "motors": motors.to_dict(),
        "step_position": position,
        "pen_down": general.pen_down,
    }


# ─── PEN TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
async def set_pen(down: bool, duration_ms: int | None = None) -> dict[str, Any]:
    """Raise or lower the pen.

    Args:
        down: True to lower the pen, False to raise it.
        duration_ms: Optional delay (1-65535 ms) before the next motion command.
    """
    board = _get_board()
    try:
        await board.set_pen_state(down, duration_ms)
    except ValidationError as e:
        return {"error": str(e)}
    return {"pen_down": down}


@mcp.tool()
async def toggle_pen(duration_ms: int | None = None) -> dict[str, Any]:
    """Toggle the pen between up and down.

    Args:
        duration_ms: Optional delay (1-65535 ms) before the next motion command.
    """
    board = _get_board()
    try:
        await board.toggle_pen(duration_ms)
    except ValidationError as e:
        return {"error": str(e)}
    return {"pen_down": await board.query_pen()}


# ─── MOTION TOOLS ────────────────────────────────────────────────────

@mcp.tool()
async def enable_motors(step_mode: str = "DIV16") -> dict[str, Any]:
    """Enable both steppers with the given microstep mode.

    Args:
        step_mode: One of DIV16, DIV8, DIV4, DIV2, DIV1 (DISABLE turns them off).
    """
    board = _get_board()
    try:
        mode = _step_mode(step_mode)
        await board.enable_motors(mode, mode)
    except ValidationError as e:
        return {"error": str(e)}
    return {"step_mode": mode.name}


@mcp.tool()
async def disable_motors() -> dict[str, Any]:
    """Disable both steppers so the carriage can be moved by hand."""
    board = _get_board()
    await board.enable_motors(StepMode.DISABLE, StepMode.DISABLE)
    return {"step_mode": StepMode.DISABLE.name}


@mcp.tool()
async def move(
    duration_ms: int,
    steps_a: int,
    steps_b: int,
    mixed_axis: bool = True,
) -> dict[str, Any]:
    """Queue a relative move on the board's motion FIFO.

    Args:
        duration_ms: Move duration in milliseconds.
        steps_a: Steps on axis A (or motor 1 when mixed_axis is False).
        steps_b: Steps on axis B (or motor 2 when mixed_axis is False).
        mixed_axis: Use XM (CoreXY style, AxiDraw) instead of SM.
    """
    board = _get_board()
    try:
        if mixed_axis:
            await board.stepper_move_mixed_axis(duration_ms, steps_a, steps_b)
        else:
            await board.stepper_move(duration_ms, steps_a, steps_b)
    except ValidationError as e:
        return {"error": str(e)}
    return {"duration_ms": duration_ms, "steps": [steps_a, steps_b]}


@mcp.tool()
async def home(step_frequency: int = 1000) -> dict[str, Any]:
    """Move both motors back to the position where they were enabled.

    Args:
        step_frequency: Step rate in steps per second (2-25000).
    """
    board = _get_board()
    try:
        await board.absolute_move(step_frequency)
    except ValidationError as e:
        return {"error": str(e)}
    return {"homing": True, "step_frequency": step_frequency}


@mcp.tool()
async def emergency_stop(disable_motors: bool = False) -> dict[str, Any]:
    """Abort the current move and discard queued moves.

    Args:
        disable_motors: Also de-energize both steppers.
    """
    board = _get_board()
    info = await board.emergency_stop(disable_motors)
    return info.to_dict()


# ─── ANALOG / POWER TOOLS ────────────────────────────────────────────

@mcp.tool()
async def read_analog() -> dict[str, Any]:
    """Read every enabled analog channel as raw counts and volts."""
    board = _get_board()
    readings = await board.analog_value_get()
    return {
        "channels": {
            str(channel): {"raw": raw, "volts": round(adc_to_volts(raw), 3)}
            for channel, raw in readings.items()
        }
    }


@mcp.tool()
async def configure_analog(channel: int, enabled: bool) -> dict[str, Any]:
    """Enable or disable an analog input channel.

    Args:
        channel: Analog channel (0-15).
        enabled: True to include the channel in read_analog results.
    """
    board = _get_board()
    try:
        await board.analog_configure(channel, enabled)
    except ValidationError as e:
        return {"error": str(e)}
    return {"channel": channel, "enabled": enabled}


@mcp.tool()
async def query_power() -> dict[str, Any]:
    """Read the motor current limit and the board's supply voltage."""
    board = _get_board()
    reading = await board.query_current(old_board=_old_board)
    result = reading.to_dict()
    result["servo_powered"] = await board.query_servo_power()
    return result


@mcp.tool()
async def set_nickname(nickname: str) -> dict[str, Any]:
    """Store a nickname on the board (up to 16 printable ASCII characters).

    Args:
        nickname: The new nickname.
    """
    board = _get_board()
    try:
        await board.set_nickname(nickname)
    except ValidationError as e:
        return {"error": str(e)}
    return {"nickname": nickname}


@mcp.tool()
async def send_command(command: str, response_lines: int = 1) -> dict[str, Any]:
    """Send a raw EBB command and return the reply lines unparsed.

    Args:
        command: Command text without terminator, e.g. "QG" or "SC,10,65535".
        response_lines: Number of reply lines to wait for (0-2).
    """
    if not command or not all(" " <= ch <= "~" for ch in command):
        return {"error": "Command must be non-empty printable ASCII"}
    if not 0 <= response_lines <= 2:
        return {"error": "Response lines must be 0-2"}

    board = _get_board()
    lines = await board.queue.enqueue(command, response_lines)
    return {"command": command, "lines": lines}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("ebb://device/status")
def resource_device_status() -> str:
    """Connection state and command queue state."""
    if _board is None or not _board.connected:
        return json.dumps({"connected": False})

    return json.dumps({
        "connected": True,
        "port": _port,
        "old_board": _old_board,
        "queue_state": _board.queue.state.value,
        "queued_commands": len(_board.queue),
    })


@mcp.resource("ebb://reference/step-modes")
def resource_step_modes() -> str:
    """Microstep modes accepted by enable_motors."""
    modes = [{"name": m.name, "value": int(m)} for m in StepMode]
    return json.dumps({"step_modes": modes})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def draw_square(size_steps: int = 500, duration_ms: int = 500) -> str:
    """Guide the AI through drawing a square with the plotter.

    Args:
        size_steps: Side length in motor steps.
        duration_ms: Duration of each side's move.
    """
    return f"""Draw a square with sides of {size_steps} steps.

Steps:
1. set_pen with down=true, duration_ms=1000
2. enable_motors with step_mode="DIV16"
3. move with duration_ms={duration_ms} for each side in turn:
   ({size_steps}, 0), (0, {size_steps}), (-{size_steps}, 0), (0, -{size_steps})
4. set_pen with down=false

Moves are queued on the board, so each move returns before the pen reaches
its target. Use get_status to check whether motion has finished."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
