"""Command identifiers and per-command encoders.

Each ``build_*`` function validates its parameters and returns a
:class:`CommandRequest` holding the ASCII command text (without the ``\\r``
terminator) and the number of reply lines the firmware sends back. Nothing
is written to the device here; an invalid parameter raises
:class:`~ebb_mcp.errors.ValidationError` before the request exists.

See https://evil-mad.github.io/EggBot/ebb.html for the command reference.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum

from ..errors import ValidationError
from ..utils.validation import (
    INT24_MAX,
    INT24_MIN,
    INT31_MAX,
    INT32_MIN,
    UINT16_MAX,
    UINT32_MAX,
    check_byte,
    check_int,
    check_nickname,
    check_pin_index,
    check_port_letter,
)


class Command(str, Enum):
    """EBB command mnemonics."""

    ANALOG_VALUE_GET = "A"
    ANALOG_CONFIGURE = "AC"
    BOOTLOADER = "BL"
    CONFIGURE_PINS = "C"
    CLEAR_STEP_POSITION = "CS"
    CONFIGURE_USER_OPTIONS = "CU"
    ENABLE_MOTORS = "EM"
    EMERGENCY_STOP = "ES"
    HOME_MOVE = "HM"
    INPUT = "I"
    LOW_LEVEL_MOVE = "LM"
    LOW_LEVEL_MOVE_TIME_LIMITED = "LT"
    MEMORY_READ = "MR"
    MEMORY_WRITE = "MW"
    NODE_COUNT_DECREMENT = "ND"
    NODE_COUNT_INCREMENT = "NI"
    OUTPUT = "O"
    PULSE_CONFIGURE = "PC"
    PIN_DIRECTION = "PD"
    PULSE_GO = "PG"
    PIN_INPUT = "PI"
    PIN_OUTPUT = "PO"
    QUERY_BUTTON = "QB"
    QUERY_CURRENT = "QC"
    QUERY_MOTOR_CONFIG = "QE"
    QUERY_GENERAL = "QG"
    QUERY_LAYER = "QL"
    QUERY_MOTORS = "QM"
    QUERY_NODE_COUNT = "QN"
    QUERY_PEN = "QP"
    QUERY_SERVO_POWER = "QR"
    QUERY_STEP_POSITION = "QS"
    QUERY_NICKNAME = "QT"
    RESET = "R"
    REBOOT = "RB"
    SERVO_OUTPUT = "S2"
    STEPPER_SERVO_CONFIGURE = "SC"
    ENGRAVER = "SE"
    SET_LAYER = "SL"
    STEPPER_MOVE = "SM"
    SET_NODE_COUNT = "SN"
    SET_PEN_STATE = "SP"
    SERVO_POWER_TIMEOUT = "SR"
    SET_NICKNAME = "ST"
    TIMED_READ = "T"
    TOGGLE_PEN = "TP"
    VERSION = "V"
    MIXED_AXIS_MOVE = "XM"


class StepMode(IntEnum):
    """Motor enable/microstep values as written by ``EM``."""

    DISABLE = 0
    DIV16 = 1
    DIV8 = 2
    DIV4 = 3
    DIV2 = 4
    DIV1 = 5


PEN_DOWN = 0
PEN_UP = 1

SERVO_POWER_ON = 1

MODE_DIGITAL = 0
MODE_ANALOG = 1

# Reply shapes
ACK_LINES = 1    # bare "OK"
DATA_LINES = 2   # data line followed by "OK"
STATUS_LINES = 1  # one structured line, no "OK"
NO_REPLY = 0

MAX_ANALOG_CHANNEL = 15
MAX_MEMORY_ADDRESS = 4095
MAX_HOME_POSITION = 4294967
MAX_ENGRAVER_POWER = 1023
MAX_LAYER = 127
MAX_SERVO_PIN = 24

# SC parameter index -> (low, high)
STEPPER_SERVO_PARAM_RANGES: dict[int, tuple[int, int]] = {
    1: (0, 2),            # pen lift mechanism
    2: (0, 2),            # stepper signal control
    4: (1, UINT16_MAX),   # servo min
    5: (1, UINT16_MAX),   # servo max
    8: (1, 24),           # number of RC channels
    9: (1, 6),            # S2 channel duration
    10: (0, UINT16_MAX),  # servo rate
    11: (0, UINT16_MAX),  # servo rate up
    12: (0, UINT16_MAX),  # servo rate down
    13: (0, 1),           # alternate pause button function
}


@dataclass(frozen=True)
class CommandRequest:
    """An encoded command and the number of reply lines it produces."""

    command: Command
    text: str
    response_lines: int = ACK_LINES

    def __str__(self) -> str:
        return self.text


def build_command(
    command: Command, *params: object, response_lines: int = ACK_LINES
) -> CommandRequest:
    """Join a mnemonic and its parameters into a comma-separated request."""
    text = ",".join([command.value, *(str(p) for p in params)])
    return CommandRequest(command=command, text=text, response_lines=response_lines)


def _flag(value: bool) -> int:
    return 1 if value else 0


def _floor_int(name: str, value: float) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value!r}")
    return math.floor(value)


def _check_ports(values: tuple[int, int, int, int, int]) -> list[int]:
    return [check_byte(f"Port {letter} value", v) for letter, v in zip("ABCDE", values)]


# ─── ANALOG / DIGITAL I/O ────────────────────────────────────────────

def build_analog_value_get() -> CommandRequest:
    return build_command(Command.ANALOG_VALUE_GET, response_lines=STATUS_LINES)


def build_analog_configure(channel: int, enabled: bool) -> CommandRequest:
    """Enable or disable an analog input channel (0-15)."""
    check_int("Channel", channel, 0, MAX_ANALOG_CHANNEL)
    return build_command(Command.ANALOG_CONFIGURE, channel, _flag(enabled))


def build_configure_pin_directions(
    port_a: int, port_b: int, port_c: int, port_d: int, port_e: int
) -> CommandRequest:
    """Write all five TRIS registers. A set bit makes the pin an input."""
    values = _check_ports((port_a, port_b, port_c, port_d, port_e))
    return build_command(Command.CONFIGURE_PINS, *values)


def build_get_input() -> CommandRequest:
    return build_command(Command.INPUT, response_lines=STATUS_LINES)


def build_set_outputs(
    port_a: int, port_b: int, port_c: int, port_d: int, port_e: int
) -> CommandRequest:
    values = _check_ports((port_a, port_b, port_c, port_d, port_e))
    return build_command(Command.OUTPUT, *values)


def build_set_pin_direction(port: str, pin: int, is_output: bool) -> CommandRequest:
    """Set one pin's direction. The firmware takes 0 for output, 1 for input."""
    check_port_letter(port)
    check_pin_index(pin)
    return build_command(Command.PIN_DIRECTION, port, pin, 0 if is_output else 1)


def build_pin_input(port: str, pin: int) -> CommandRequest:
    check_port_letter(port)
    check_pin_index(pin)
    return build_command(Command.PIN_INPUT, port, pin, response_lines=STATUS_LINES)


def build_pin_output(port: str, pin: int, high: bool) -> CommandRequest:
    check_port_letter(port)
    check_pin_index(pin)
    return build_command(Command.PIN_OUTPUT, port, pin, _flag(high))


def build_timed_read(duration: int, digital: bool) -> CommandRequest:
    """Start timed readings every ``duration`` ms (1-65535)."""
    check_int("Duration", duration, 1, UINT16_MAX)
    mode = MODE_DIGITAL if digital else MODE_ANALOG
    return build_command(Command.TIMED_READ, duration, mode)


def build_pulse_configure(*durations_and_periods: int) -> CommandRequest:
    """Configure the four pulse generators.

    Takes ``duration0, period0, ... duration3, period3`` in milliseconds.
    """
    if len(durations_and_periods) != 8:
        raise ValidationError(
            f"Pulse configuration needs 8 values, got {len(durations_and_periods)}"
        )
    names = [f"{kind} {i}" for i in range(4) for kind in ("Duration", "Period")]
    for name, value in zip(names, durations_and_periods):
        check_int(name, value, 0, UINT16_MAX)
    return build_command(Command.PULSE_CONFIGURE, *durations_and_periods)


def build_pulse_go(enabled: bool) -> CommandRequest:
    return build_command(Command.PULSE_GO, _flag(enabled))


# ─── MEMORY ──────────────────────────────────────────────────────────

def build_memory_read(address: int) -> CommandRequest:
    check_int("Address", address, 0, MAX_MEMORY_ADDRESS)
    return build_command(Command.MEMORY_READ, address, response_lines=STATUS_LINES)


def build_memory_write(address: int, value: int) -> CommandRequest:
    check_int("Address", address, 0, MAX_MEMORY_ADDRESS)
    check_byte("Value", value)
    return build_command(Command.MEMORY_WRITE, address, value)


# ─── SYSTEM ──────────────────────────────────────────────────────────

def build_enter_bootloader() -> CommandRequest:
    return build_command(Command.BOOTLOADER)


def build_reset() -> CommandRequest:
    return build_command(Command.RESET)


def build_reboot() -> CommandRequest:
    """Reboot. The board drops off the bus without replying."""
    return build_command(Command.REBOOT, response_lines=NO_REPLY)


def build_query_version() -> CommandRequest:
    return build_command(Command.VERSION, response_lines=STATUS_LINES)


def build_configure_user_options(
    enable_ok_response: bool = True,
    enable_parameter_limit_checking: bool = True,
    enable_fifo_led_indicator: bool = False,
) -> list[CommandRequest]:
    """Build the three ``CU`` requests, one per user option."""
    options = (
        enable_ok_response,
        enable_parameter_limit_checking,
        enable_fifo_led_indicator,
    )
    return [
        build_command(Command.CONFIGURE_USER_OPTIONS, index, _flag(value))
        for index, value in enumerate(options, start=1)
    ]


def build_query_nickname() -> CommandRequest:
    return build_command(Command.QUERY_NICKNAME, response_lines=DATA_LINES)


def build_set_nickname(nickname: str) -> CommandRequest:
    check_nickname(nickname)
    return build_command(Command.SET_NICKNAME, nickname)


def build_query_button() -> CommandRequest:
    return build_command(Command.QUERY_BUTTON, response_lines=DATA_LINES)


def build_query_current() -> CommandRequest:
    return build_command(Command.QUERY_CURRENT, response_lines=DATA_LINES)


def build_query_general() -> CommandRequest:
    return build_command(Command.QUERY_GENERAL, response_lines=STATUS_LINES)


def build_query_layer() -> CommandRequest:
    return build_command(Command.QUERY_LAYER, response_lines=DATA_LINES)


def build_set_layer(value: int) -> CommandRequest:
    check_int("Layer value", value, 0, MAX_LAYER)
    return build_command(Command.SET_LAYER, value)


def build_query_node_count() -> CommandRequest:
    return build_command(Command.QUERY_NODE_COUNT, response_lines=DATA_LINES)


def build_set_node_count(value: int) -> CommandRequest:
    check_int("Node count", value, 0, UINT32_MAX)
    return build_command(Command.SET_NODE_COUNT, value)


def build_node_count_decrement() -> CommandRequest:
    return build_command(Command.NODE_COUNT_DECREMENT)


def build_node_count_increment() -> CommandRequest:
    return build_command(Command.NODE_COUNT_INCREMENT)


# ─── MOTORS ──────────────────────────────────────────────────────────

def build_enable_motors(m1_mode: int, m2_mode: int) -> CommandRequest:
    """Enable/disable the steppers. Use :class:`StepMode` values."""
    check_byte("Motor 1 mode", m1_mode)
    check_byte("Motor 2 mode", m2_mode)
    return build_command(Command.ENABLE_MOTORS, int(m1_mode), int(m2_mode))


def build_query_motor_config() -> CommandRequest:
    return build_command(Command.QUERY_MOTOR_CONFIG, response_lines=DATA_LINES)


def build_emergency_stop(disable_motors: bool = False) -> CommandRequest:
    if disable_motors:
        return build_command(Command.EMERGENCY_STOP, 1, response_lines=DATA_LINES)
    return build_command(Command.EMERGENCY_STOP, response_lines=DATA_LINES)


def build_clear_step_position() -> CommandRequest:
    return build_command(Command.CLEAR_STEP_POSITION)


def build_query_step_position() -> CommandRequest:
    return build_command(Command.QUERY_STEP_POSITION, response_lines=DATA_LINES)


def build_query_motors() -> CommandRequest:
    return build_command(Command.QUERY_MOTORS, response_lines=STATUS_LINES)


def build_absolute_move(
    step_frequency: int, position1: int = 0, position2: int = 0
) -> CommandRequest:
    """Utility move to an absolute position; (0, 0) is home."""
    check_int("Step frequency", step_frequency, 2, 25000)
    check_int("Motor 1 position", position1, -MAX_HOME_POSITION, MAX_HOME_POSITION)
    check_int("Motor 2 position", position2, -MAX_HOME_POSITION, MAX_HOME_POSITION)
    return build_command(Command.HOME_MOVE, step_frequency, position1, position2)


def _clear_bits(m1_clear: bool, m2_clear: bool) -> int:
    return (2 if m2_clear else 0) + (1 if m1_clear else 0)


def build_low_level_move(
    m1_rate: int,
    m1_steps: int,
    m1_accel: int,
    m1_clear: bool,
    m2_rate: int,
    m2_steps: int,
    m2_accel: int,
    m2_clear: bool,
) -> CommandRequest:
    """Step-limited move with per-axis rate and constant acceleration."""
    check_int("Motor 1 rate", m1_rate, 0, INT31_MAX)
    check_int("Motor 2 rate", m2_rate, 0, INT31_MAX)
    check_int("Motor 1 steps", m1_steps, INT32_MIN, INT31_MAX)
    check_int("Motor 2 steps", m2_steps, INT32_MIN, INT31_MAX)
    check_int("Motor 1 acceleration", m1_accel, INT32_MIN, INT31_MAX)
    check_int("Motor 2 acceleration", m2_accel, INT32_MIN, INT31_MAX)
    return build_command(
        Command.LOW_LEVEL_MOVE,
        m1_rate, m1_steps, m1_accel,
        m2_rate, m2_steps, m2_accel,
        _clear_bits(m1_clear, m2_clear),
    )


def build_low_level_move_time_limited(
    intervals: int,
    m1_rate: int,
    m1_accel: int,
    m1_clear: bool,
    m2_rate: int,
    m2_accel: int,
    m2_clear: bool,
) -> CommandRequest:
    """Time-limited move over ``intervals`` 40 us ticks.

    Rates are signed here: the sign selects the direction.
    """
    check_int("Intervals", intervals, 0, INT31_MAX)
    check_int("Motor 1 rate", m1_rate, -INT31_MAX, INT31_MAX)
    check_int("Motor 2 rate", m2_rate, -INT31_MAX, INT31_MAX)
    check_int("Motor 1 acceleration", m1_accel, INT32_MIN, INT31_MAX)
    check_int("Motor 2 acceleration", m2_accel, INT32_MIN, INT31_MAX)
    return build_command(
        Command.LOW_LEVEL_MOVE_TIME_LIMITED,
        intervals,
        m1_rate, m1_accel,
        m2_rate, m2_accel,
        _clear_bits(m1_clear, m2_clear),
    )


def build_stepper_move(duration: int, m1_steps: int, m2_steps: int) -> CommandRequest:
    check_int("Duration", duration, 1, INT24_MAX)
    check_int("Motor 1 steps", m1_steps, INT24_MIN, INT24_MAX)
    check_int("Motor 2 steps", m2_steps, INT24_MIN, INT24_MAX)
    return build_command(Command.STEPPER_MOVE, duration, m1_steps, m2_steps)


def build_stepper_move_mixed_axis(
    duration_ms: float, steps_a: float, steps_b: float
) -> CommandRequest:
    """Mixed-axis (CoreXY style) move. Fractional values are floored."""
    duration = check_int("Duration", _floor_int("Duration", duration_ms), 1, INT24_MAX)
    a = check_int("Steps A", _floor_int("Steps A", steps_a), -INT24_MAX, INT24_MAX)
    b = check_int("Steps B", _floor_int("Steps B", steps_b), -INT24_MAX, INT24_MAX)
    return build_command(Command.MIXED_AXIS_MOVE, duration, a, b)


# ─── PEN / SERVO ─────────────────────────────────────────────────────

def build_query_pen() -> CommandRequest:
    return build_command(Command.QUERY_PEN, response_lines=DATA_LINES)


def build_set_pen_state(
    pen_down: bool,
    duration: int | None = None,
    port_b_pin: int | None = None,
) -> CommandRequest:
    """Raise or lower the pen.

    Args:
        pen_down: Lower the pen if True, raise it if False.
        duration: Optional delay in ms before the next motion command.
        port_b_pin: Optional RB pin driving the servo; requires ``duration``.
    """
    state = PEN_DOWN if pen_down else PEN_UP
    params: list[int] = [state]
    if duration is not None:
        params.append(check_int("Duration", duration, 1, UINT16_MAX))
    if port_b_pin is not None:
        if duration is None:
            raise ValidationError("Port B pin can only be given together with a duration")
        params.append(check_int("Port B pin", port_b_pin, 0, 7))
    return build_command(Command.SET_PEN_STATE, *params)


def build_toggle_pen(duration: float | None = None) -> CommandRequest:
    if duration is None:
        return build_command(Command.TOGGLE_PEN)
    ms = check_int("Duration", _floor_int("Duration", duration), 1, UINT16_MAX)
    return build_command(Command.TOGGLE_PEN, ms)


def build_query_servo_power() -> CommandRequest:
    return build_command(Command.QUERY_SERVO_POWER, response_lines=DATA_LINES)


def build_set_servo_power_timeout(duration: int, power_on: bool) -> CommandRequest:
    check_int("Duration", duration, 0, UINT32_MAX)
    return build_command(Command.SERVO_POWER_TIMEOUT, duration, _flag(power_on))


def build_servo_output(position: int, pin: int, rate: int, delay: int) -> CommandRequest:
    """General RC servo output on an RB/RC pin.

    Args:
        position: Pulse "on time" in 1/12 us units (0-65535). 0 turns it off.
        pin: RP pin number (0-24).
        rate: Slew rate (0-65535).
        delay: Milliseconds to delay the next motion command (0-65535).
    """
    check_int("Position", position, 0, UINT16_MAX)
    check_int("Pin index", pin, 0, MAX_SERVO_PIN)
    check_int("Rate", rate, 0, UINT16_MAX)
    check_int("Delay", delay, 0, UINT16_MAX)
    return build_command(Command.SERVO_OUTPUT, position, pin, rate, delay)


def build_stepper_and_servo_mode_configure(param_index: int, param_value: int) -> CommandRequest:
    if param_index not in STEPPER_SERVO_PARAM_RANGES:
        raise ValidationError(f"Parameter index {param_index} not allowed")
    low, high = STEPPER_SERVO_PARAM_RANGES[param_index]
    check_int("Parameter value", param_value, low, high)
    return build_command(Command.STEPPER_SERVO_CONFIGURE, param_index, param_value)


def build_set_engraver(enable: bool, power: int, use_motion_queue: bool) -> CommandRequest:
    check_int("Power", power, 0, MAX_ENGRAVER_POWER)
    return build_command(
        Command.ENGRAVER, _flag(enable), power, _flag(use_motion_queue)
    )
