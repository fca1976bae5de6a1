"""Status records returned by the EBB query commands."""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class GeneralStatus:
    """Decoded ``QG`` status byte.

    Bit layout, most significant first::

        7      6      5           4         3                  2              1              0
        RB5    RB2    PRG button  pen down  command executing  motor 1 moving motor 2 moving FIFO not empty
    """

    pin_rb5: bool
    pin_rb2: bool
    button_prg: bool
    pen_down: bool
    command_executing: bool
    motor1_moving: bool
    motor2_moving: bool
    fifo_empty: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MotorStatus:
    """Decoded ``QM`` reply."""

    executing_motion: bool
    motor_moving: tuple[bool, bool]
    fifo_empty: bool

    def to_dict(self) -> dict:
        return {
            "executing_motion": self.executing_motion,
            "motor_moving": list(self.motor_moving),
            "fifo_empty": self.fifo_empty,
        }


@dataclass(frozen=True)
class EStopInfo:
    """Decoded ``ES`` reply: what the emergency stop interrupted."""

    interrupted: bool
    fifo_steps: tuple[int, int]
    steps_remaining: tuple[int, int]

    def to_dict(self) -> dict:
        return {
            "interrupted": self.interrupted,
            "fifo_steps": list(self.fifo_steps),
            "steps_remaining": list(self.steps_remaining),
        }


@dataclass(frozen=True)
class CurrentReading:
    """Decoded ``QC`` reply in physical units."""

    max_current: float  # amps
    power_voltage: float  # volts

    def to_dict(self) -> dict:
        return {
            "max_current_a": round(self.max_current, 3),
            "power_voltage_v": round(self.power_voltage, 2),
        }
