"""Conversions for the EBB's 10-bit analog readings.

The PIC's ADC reports 0-1023 across a 0-3.3 V reference. The ``QC`` query
returns two such readings: the RA0 voltage set by the motor current
potentiometer, and the supply voltage seen through a resistor divider whose
ratio changed between board revisions.
"""

from __future__ import annotations

ADC_MAX = 1023
ADC_REFERENCE_VOLTS = 3.3

# RA0 volts per amp of motor current limit
CURRENT_SENSE_VOLTS_PER_AMP = 1.76

# Supply divider ratios
OLD_BOARD_DIVIDER_RATIO = 1 / 11.0  # EBB v2.2 and older
NEW_BOARD_DIVIDER_RATIO = 1 / 9.2   # EBB v2.3 and newer

# Input protection diode in front of the divider
DIODE_DROP_VOLTS = 0.3


def adc_to_volts(raw: int) -> float:
    """Convert a raw 10-bit reading to volts at the ADC pin."""
    return (ADC_REFERENCE_VOLTS * raw) / ADC_MAX


def max_current_from_adc(raw: int) -> float:
    """Motor current limit in amps for a raw RA0 reading."""
    return adc_to_volts(raw) / CURRENT_SENSE_VOLTS_PER_AMP


def supply_voltage_from_adc(raw: int, old_board: bool = False) -> float:
    """Board supply voltage for a raw V+ reading.

    Args:
        raw: Raw 10-bit reading of the divided supply.
        old_board: True for EBB v2.2 and older, which use a 1/11 divider.
    """
    ratio = OLD_BOARD_DIVIDER_RATIO if old_board else NEW_BOARD_DIVIDER_RATIO
    return adc_to_volts(raw) / ratio + DIODE_DROP_VOLTS
