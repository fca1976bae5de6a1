"""Response parsing for EBB replies.

Every parser takes the reply lines collected for one command (in arrival
order) and either returns a typed value or raises
:class:`~ebb_mcp.errors.ProtocolError` naming the offending text.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..errors import ProtocolError
from ..models.status import CurrentReading, EStopInfo, GeneralStatus, MotorStatus
from ..utils.adc import ADC_MAX, max_current_from_adc, supply_voltage_from_adc
from ..utils.bits import decode_flags
from .commands import MAX_ANALOG_CHANNEL, PEN_DOWN, SERVO_POWER_ON, StepMode

OK = "OK"

_INT_RE = re.compile(r"[+-]?\d+")
_HEX_BYTE_RE = re.compile(r"[0-9A-Fa-f]{2}")

GENERAL_STATUS_BITS = {
    "pin_rb5": 7,
    "pin_rb2": 6,
    "button_prg": 5,
    "pen_down": 4,
    "command_executing": 3,
    "motor1_moving": 2,
    "motor2_moving": 1,
    "fifo_empty": 0,
}

# QE reports the microstep divisor; EM takes the StepMode index
MICROSTEP_DIVISORS = {
    0: StepMode.DISABLE,
    1: StepMode.DIV1,
    2: StepMode.DIV2,
    4: StepMode.DIV4,
    8: StepMode.DIV8,
    16: StepMode.DIV16,
}


def response_text(lines: Sequence[str]) -> str:
    return "\r\n".join(lines)


def _unexpected(lines: Sequence[str]) -> ProtocolError:
    text = response_text(lines)
    return ProtocolError(f"Received unexpected response: {text!r}", text)


def _int(field: str, lines: Sequence[str]) -> int:
    if not _INT_RE.fullmatch(field):
        raise _unexpected(lines)
    return int(field, 10)


def _fields(line: str, tag: str, count: int, lines: Sequence[str]) -> list[str]:
    """Split a ``TAG,f1,f2,...`` line and return exactly ``count`` fields."""
    tag_, *fields = line.split(",")
    if tag_ != tag or len(fields) != count:
        raise _unexpected(lines)
    return fields


def parse_ok(lines: Sequence[str]) -> None:
    """Validate a bare ``OK`` acknowledgment."""
    if list(lines) != [OK]:
        raise _unexpected(lines)


def parse_data(lines: Sequence[str]) -> str:
    """Validate a ``data`` + ``OK`` reply and return the data line."""
    if len(lines) != 2 or lines[1] != OK:
        raise _unexpected(lines)
    return lines[0]


def _single(lines: Sequence[str]) -> str:
    if len(lines) != 1:
        raise _unexpected(lines)
    return lines[0]


# ─── DATA + OK REPLIES ───────────────────────────────────────────────

def parse_int_reply(lines: Sequence[str]) -> int:
    """``QL``, ``QN``: a single integer followed by ``OK``."""
    return _int(parse_data(lines), lines)


def parse_int_list_reply(lines: Sequence[str], count: int) -> list[int]:
    """A comma-separated list of ``count`` integers followed by ``OK``."""
    fields = parse_data(lines).split(",")
    if len(fields) != count:
        raise _unexpected(lines)
    return [_int(f, lines) for f in fields]


def parse_text_reply(lines: Sequence[str]) -> str:
    """``QT``: free text followed by ``OK``."""
    return parse_data(lines)


def parse_flag_reply(lines: Sequence[str], true_value: int = 1) -> bool:
    """A ``0``/``1`` flag followed by ``OK``; True when it equals ``true_value``."""
    value = parse_int_reply(lines)
    if value not in (0, 1):
        raise _unexpected(lines)
    return value == true_value


def parse_button(lines: Sequence[str]) -> bool:
    return parse_flag_reply(lines, 1)


def parse_pen_down(lines: Sequence[str]) -> bool:
    """``QP`` reports 1 for up and 0 for down."""
    return parse_flag_reply(lines, PEN_DOWN)


def parse_servo_power(lines: Sequence[str]) -> bool:
    return parse_flag_reply(lines, SERVO_POWER_ON)


def parse_step_position(lines: Sequence[str]) -> list[int]:
    return parse_int_list_reply(lines, 2)


def parse_motor_config(lines: Sequence[str]) -> tuple[StepMode, StepMode]:
    m1, m2 = parse_int_list_reply(lines, 2)
    if m1 not in MICROSTEP_DIVISORS or m2 not in MICROSTEP_DIVISORS:
        raise _unexpected(lines)
    return MICROSTEP_DIVISORS[m1], MICROSTEP_DIVISORS[m2]


def parse_emergency_stop(lines: Sequence[str]) -> EStopInfo:
    interrupted, fifo1, fifo2, rem1, rem2 = parse_int_list_reply(lines, 5)
    return EStopInfo(
        interrupted=interrupted == 1,
        fifo_steps=(fifo1, fifo2),
        steps_remaining=(rem1, rem2),
    )


def parse_current(lines: Sequence[str], old_board: bool = False) -> CurrentReading:
    """``QC``: raw RA0 and V+ readings converted to amps and volts."""
    ra0_raw, vp_raw = parse_int_list_reply(lines, 2)
    if not (0 <= ra0_raw <= ADC_MAX and 0 <= vp_raw <= ADC_MAX):
        raise _unexpected(lines)
    return CurrentReading(
        max_current=max_current_from_adc(ra0_raw),
        power_voltage=supply_voltage_from_adc(vp_raw, old_board),
    )


# ─── SINGLE-LINE STATUS REPLIES ──────────────────────────────────────

def parse_analog_values(lines: Sequence[str]) -> dict[int, int]:
    """``A,00:0713,02:0241,...``: enabled channel number to 10-bit reading.

    Only enabled channels appear, in ascending channel order.
    """
    tag, *tokens = _single(lines).split(",")
    if tag != "A":
        raise _unexpected(lines)

    readings: dict[int, int] = {}
    for token in tokens:
        channel_str, sep, value_str = token.partition(":")
        if not sep:
            raise _unexpected(lines)
        channel = _int(channel_str, lines)
        value = _int(value_str, lines)
        if readings and channel <= max(readings):
            raise _unexpected(lines)
        if channel > MAX_ANALOG_CHANNEL or not 0 <= value <= ADC_MAX:
            raise _unexpected(lines)
        readings[channel] = value
    return readings


def parse_input_ports(lines: Sequence[str]) -> list[int]:
    """``I,a,b,c,d,e``: PORTA-PORTE as bytes."""
    fields = _fields(_single(lines), "I", 5, lines)
    return [_int(f, lines) for f in fields]


def parse_memory_read(lines: Sequence[str]) -> int:
    (value,) = _fields(_single(lines), "MR", 1, lines)
    return _int(value, lines)


def parse_pin_input(lines: Sequence[str]) -> bool:
    (value,) = _fields(_single(lines), "PI", 1, lines)
    return _int(value, lines) == 1


def parse_motor_status(lines: Sequence[str]) -> MotorStatus:
    """``QM,command,motor1,motor2,fifo``."""
    command, motor1, motor2, fifo = (
        _int(f, lines) for f in _fields(_single(lines), "QM", 4, lines)
    )
    return MotorStatus(
        executing_motion=command > 0,
        motor_moving=(motor1 == 1, motor2 == 1),
        fifo_empty=fifo == 0,
    )


def parse_general_status(lines: Sequence[str]) -> GeneralStatus:
    """``QG``: one hex status byte, e.g. ``3E``.

    Bit 0 is set while the motion FIFO holds a command, so ``fifo_empty``
    is its inverse.
    """
    line = _single(lines)
    if not _HEX_BYTE_RE.fullmatch(line):
        raise _unexpected(lines)
    flags = decode_flags(int(line, 16), GENERAL_STATUS_BITS, inverted={"fifo_empty"})
    return GeneralStatus(**flags)


def parse_version(lines: Sequence[str]) -> str:
    line = _single(lines)
    if not line:
        raise _unexpected(lines)
    return line
