"""Typed results decoded from EBB replies."""

from .status import (
    GeneralStatus,
    MotorStatus,
    EStopInfo,
    CurrentReading,
)
