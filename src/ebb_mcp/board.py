"""High-level EBB client: one coroutine per firmware command.

Each method encodes its command (validating parameters first), queues it on
the connection's :class:`~ebb_mcp.protocol.dispatch.CommandQueue`, and decodes
the collected reply lines.

Example::

    board = EiBotBoard(SerialConnection("/dev/ttyACM0"))
    await board.connect()
    await board.set_pen_state(pen_down=True)
    await board.enable_motors(StepMode.DIV16, StepMode.DIV16)
    await board.stepper_move_mixed_axis(500, 500, 0)
    await board.disconnect()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from .errors import TransportError
from .models.status import CurrentReading, EStopInfo, GeneralStatus, MotorStatus
from .protocol import commands as cmd
from .protocol import parser
from .protocol.commands import CommandRequest, StepMode
from .protocol.dispatch import (
    DEFAULT_TIMEOUT_MS,
    LATE_REPLY_GRACE_MS,
    CommandQueue,
    ResponseRouter,
)
from .transport.base import LineTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EiBotBoard:
    """Command/response client for one EBB over one transport.

    Args:
        transport: The line transport to the board.
        timeout_ms: Default reply budget per command.
        late_reply_grace_ms: How long a timed-out command keeps swallowing
            its late reply lines.
    """

    def __init__(
        self,
        transport: LineTransport,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        late_reply_grace_ms: float = LATE_REPLY_GRACE_MS,
    ) -> None:
        self.transport = transport
        self.router = ResponseRouter()
        self.queue = CommandQueue(transport, self.router, timeout_ms, late_reply_grace_ms)
        transport.set_line_handler(self.router.feed_line)

    @property
    def connected(self) -> bool:
        return self.transport.connected

    async def connect(self) -> None:
        await self.transport.connect()

    async def disconnect(self) -> None:
        """Fail anything still queued and close the transport."""
        self.queue.abort(TransportError("Disconnected"))
        await self.transport.disconnect()

    async def __aenter__(self) -> EiBotBoard:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # ─── DISPATCH ────────────────────────────────────────────────────

    async def command(
        self, request: CommandRequest, timeout_ms: float | None = None
    ) -> list[str]:
        """Send a request and return its raw reply lines."""
        return await self.queue.enqueue(request.text, request.response_lines, timeout_ms)

    async def _query(
        self,
        request: CommandRequest,
        decode: Callable[[list[str]], T],
        timeout_ms: float | None = None,
    ) -> T:
        return decode(await self.command(request, timeout_ms))

    async def _ack(self, request: CommandRequest, timeout_ms: float | None = None) -> None:
        await self._query(request, parser.parse_ok, timeout_ms)

    # ─── ANALOG / DIGITAL I/O ────────────────────────────────────────

    async def analog_value_get(self) -> dict[int, int]:
        """Read every enabled analog channel (``A``).

        Returns:
            Channel number to 10-bit reading (0-1023, 0-3.3 V).
        """
        return await self._query(cmd.build_analog_value_get(), parser.parse_analog_values)

    async def analog_configure(self, channel: int, enabled: bool) -> None:
        """Enable or disable analog channel 0-15 (``AC``)."""
        await self._ack(cmd.build_analog_configure(channel, enabled))

    async def configure_pin_directions(
        self, port_a: int, port_b: int, port_c: int, port_d: int, port_e: int
    ) -> None:
        """Write the TRIS registers of ports A-E (``C``). Set bits are inputs."""
        await self._ack(cmd.build_configure_pin_directions(port_a, port_b, port_c, port_d, port_e))

    async def get_input(self) -> list[int]:
        """Read PORTA-PORTE (``I``)."""
        return await self._query(cmd.build_get_input(), parser.parse_input_ports)

    async def set_outputs(
        self, port_a: int, port_b: int, port_c: int, port_d: int, port_e: int
    ) -> None:
        """Write LATA-LATE (``O``)."""
        await self._ack(cmd.build_set_outputs(port_a, port_b, port_c, port_d, port_e))

    async def set_pin_direction(self, port: str, pin: int, is_output: bool) -> None:
        await self._ack(cmd.build_set_pin_direction(port, pin, is_output))

    async def pin_input(self, port: str, pin: int) -> bool:
        """Read one pin (``PI``). True if high."""
        return await self._query(cmd.build_pin_input(port, pin), parser.parse_pin_input)

    async def pin_output(self, port: str, pin: int, high: bool) -> None:
        await self._ack(cmd.build_pin_output(port, pin, high))

    async def timed_read(self, duration: int, digital: bool) -> None:
        """Start or stop timed readings (``T``)."""
        await self._ack(cmd.build_timed_read(duration, digital))

    async def pulse_configure(
        self,
        duration0: int,
        period0: int,
        duration1: int,
        period1: int,
        duration2: int,
        period2: int,
        duration3: int,
        period3: int,
    ) -> None:
        await self._ack(cmd.build_pulse_configure(
            duration0, period0, duration1, period1,
            duration2, period2, duration3, period3,
        ))

    async def pulse_go(self, enabled: bool) -> None:
        await self._ack(cmd.build_pulse_go(enabled))

    # ─── MEMORY ──────────────────────────────────────────────────────

    async def memory_read(self, address: int) -> int:
        return await self._query(cmd.build_memory_read(address), parser.parse_memory_read)

    async def memory_write(self, address: int, value: int) -> None:
        await self._ack(cmd.build_memory_write(address, value))

    # ─── SYSTEM ──────────────────────────────────────────────────────

    async def enter_bootloader(self) -> None:
        """Enter bootloader mode (``BL``).

        The board re-enumerates as a different device, so the transport is
        closed once the command is acknowledged.
        """
        await self._ack(cmd.build_enter_bootloader())
        logger.info("Board entered bootloader mode, closing connection")
        await self.disconnect()

    async def reboot(self) -> None:
        """Reboot the board (``RB``). It drops the link without replying."""
        await self.command(cmd.build_reboot())
        logger.info("Board rebooting, closing connection")
        await self.disconnect()

    async def reset(self) -> None:
        await self._ack(cmd.build_reset())

    async def query_version(self) -> str:
        return await self._query(cmd.build_query_version(), parser.parse_version)

    async def configure_user_options(
        self,
        enable_ok_response: bool = True,
        enable_parameter_limit_checking: bool = True,
        enable_fifo_led_indicator: bool = False,
    ) -> None:
        """Set the three ``CU`` options, one command each."""
        for request in cmd.build_configure_user_options(
            enable_ok_response,
            enable_parameter_limit_checking,
            enable_fifo_led_indicator,
        ):
            await self._ack(request)

    async def query_nickname(self) -> str:
        return await self._query(cmd.build_query_nickname(), parser.parse_text_reply)

    async def set_nickname(self, nickname: str) -> None:
        await self._ack(cmd.build_set_nickname(nickname))

    async def query_button(self) -> bool:
        """True if the PRG button was pressed since the last ``QB``/``QG``."""
        return await self._query(cmd.build_query_button(), parser.parse_button)

    async def query_current(self, old_board: bool = False) -> CurrentReading:
        """Read the motor current limit and supply voltage (``QC``).

        Args:
            old_board: True for EBB v2.2 and older, whose supply divider
                differs from later revisions.
        """
        return await self._query(
            cmd.build_query_current(),
            lambda lines: parser.parse_current(lines, old_board),
        )

    async def query_general(self) -> GeneralStatus:
        return await self._query(cmd.build_query_general(), parser.parse_general_status)

    async def query_layer(self) -> int:
        return await self._query(cmd.build_query_layer(), parser.parse_int_reply)

    async def set_layer(self, value: int) -> None:
        await self._ack(cmd.build_set_layer(value))

    async def query_node_count(self) -> int:
        return await self._query(cmd.build_query_node_count(), parser.parse_int_reply)

    async def set_node_count(self, value: int) -> None:
        await self._ack(cmd.build_set_node_count(value))

    async def node_count_increment(self) -> None:
        await self._ack(cmd.build_node_count_increment())

    async def node_count_decrement(self) -> None:
        await self._ack(cmd.build_node_count_decrement())

    # ─── MOTORS ──────────────────────────────────────────────────────

    async def enable_motors(self, m1_mode: int, m2_mode: int) -> None:
        """Enable or disable the steppers and set microstepping (``EM``)."""
        await self._ack(cmd.build_enable_motors(m1_mode, m2_mode))

    async def query_motor_config(self) -> tuple[StepMode, StepMode]:
        """Read the current step mode of each motor (``QE``, firmware 2.8.0+)."""
        return await self._query(cmd.build_query_motor_config(), parser.parse_motor_config)

    async def emergency_stop(self, disable_motors: bool = False) -> EStopInfo:
        """Abort the current move and flush the motion FIFO (``ES``)."""
        return await self._query(
            cmd.build_emergency_stop(disable_motors), parser.parse_emergency_stop
        )

    async def clear_step_position(self) -> None:
        await self._ack(cmd.build_clear_step_position())

    async def query_step_position(self) -> list[int]:
        return await self._query(cmd.build_query_step_position(), parser.parse_step_position)

    async def query_motors(self) -> MotorStatus:
        return await self._query(cmd.build_query_motors(), parser.parse_motor_status)

    async def absolute_move(
        self, step_frequency: int, position1: int = 0, position2: int = 0
    ) -> None:
        """Move to an absolute step position (``HM``). Defaults to home."""
        await self._ack(cmd.build_absolute_move(step_frequency, position1, position2))

    async def low_level_move(
        self,
        m1_rate: int,
        m1_steps: int,
        m1_accel: int,
        m1_clear: bool,
        m2_rate: int,
        m2_steps: int,
        m2_accel: int,
        m2_clear: bool,
    ) -> None:
        await self._ack(cmd.build_low_level_move(
            m1_rate, m1_steps, m1_accel, m1_clear,
            m2_rate, m2_steps, m2_accel, m2_clear,
        ))

    async def low_level_move_time_limited(
        self,
        intervals: int,
        m1_rate: int,
        m1_accel: int,
        m1_clear: bool,
        m2_rate: int,
        m2_accel: int,
        m2_clear: bool,
    ) -> None:
        await self._ack(cmd.build_low_level_move_time_limited(
            intervals, m1_rate, m1_accel, m1_clear, m2_rate, m2_accel, m2_clear,
        ))

    async def stepper_move(self, duration: int, m1_steps: int, m2_steps: int) -> None:
        await self._ack(cmd.build_stepper_move(duration, m1_steps, m2_steps))

    async def stepper_move_mixed_axis(
        self, duration_ms: float, steps_a: float, steps_b: float
    ) -> None:
        await self._ack(cmd.build_stepper_move_mixed_axis(duration_ms, steps_a, steps_b))

    # ─── PEN / SERVO ─────────────────────────────────────────────────

    async def query_pen(self) -> bool:
        """True if the pen is down."""
        return await self._query(cmd.build_query_pen(), parser.parse_pen_down)

    async def set_pen_state(
        self,
        pen_down: bool,
        duration: int | None = None,
        port_b_pin: int | None = None,
    ) -> None:
        await self._ack(cmd.build_set_pen_state(pen_down, duration, port_b_pin))

    async def toggle_pen(self, duration: float | None = None) -> None:
        await self._ack(cmd.build_toggle_pen(duration))

    async def query_servo_power(self) -> bool:
        return await self._query(cmd.build_query_servo_power(), parser.parse_servo_power)

    async def set_servo_power_timeout(self, duration: int, power_on: bool) -> None:
        await self._ack(cmd.build_set_servo_power_timeout(duration, power_on))

    async def servo_output(self, position: int, pin: int, rate: int, delay: int) -> None:
        await self._ack(cmd.build_servo_output(position, pin, rate, delay))

    async def stepper_and_servo_mode_configure(self, param_index: int, param_value: int) -> None:
        await self._ack(cmd.build_stepper_and_servo_mode_configure(param_index, param_value))

    async def set_engraver(self, enable: bool, power: int, use_motion_queue: bool) -> None:
        await self._ack(cmd.build_set_engraver(enable, power, use_motion_queue))
