"""Bitfield helpers for single-byte status registers."""

from __future__ import annotations

from collections.abc import Collection, Mapping


def bit_set(value: int, bit: int) -> bool:
    """Return True if ``bit`` (0 = least significant) is set in ``value``."""
    return (value & (1 << bit)) != 0


def decode_flags(
    value: int,
    layout: Mapping[str, int],
    inverted: Collection[str] = (),
) -> dict[str, bool]:
    """Decode named boolean flags from a status byte.

    Args:
        value: The raw status value.
        layout: Flag name to bit position.
        inverted: Names of flags that are true when their bit is clear.
    """
    return {
        name: bit_set(value, bit) != (name in inverted)
        for name, bit in layout.items()
    }
