"""Parameter domain checks shared by the command encoders.

Every check raises :class:`~ebb_mcp.errors.ValidationError` and returns the
validated value so encoders can check and format in one expression.
"""

from __future__ import annotations

from ..errors import ValidationError

PORT_LETTERS = ("A", "B", "C", "D", "E")
MAX_NICKNAME_LENGTH = 16

UINT16_MAX = 2**16 - 1
INT24_MIN = -(2**24)
INT24_MAX = 2**24 - 1
INT31_MAX = 2**31 - 1
INT32_MIN = -(2**31)
UINT32_MAX = 2**32 - 1


def check_int(name: str, value: int, low: int, high: int) -> int:
    """Check that ``value`` is an integer in ``[low, high]``."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValidationError(f"{name} must be {low}-{high}, got {value}")
    return value


def check_byte(name: str, value: int) -> int:
    return check_int(name, value, 0, 255)


def check_port_letter(letter: str) -> str:
    if letter not in PORT_LETTERS:
        raise ValidationError(
            f"Port letter must be one of {', '.join(PORT_LETTERS)}, got {letter!r}"
        )
    return letter


def check_pin_index(index: int) -> int:
    return check_int("Pin index", index, 0, 7)


def check_nickname(nickname: str) -> str:
    """Nicknames are stored on the board as at most 16 printable ASCII chars.

    Commas would be read by the firmware as a parameter separator.
    """
    if not isinstance(nickname, str):
        raise ValidationError(f"Nickname must be a string, got {nickname!r}")
    if len(nickname) > MAX_NICKNAME_LENGTH:
        raise ValidationError(
            f"Nickname must be {MAX_NICKNAME_LENGTH} characters or less, "
            f"got {len(nickname)}"
        )
    if not all(" " <= ch <= "~" for ch in nickname) or "," in nickname:
        raise ValidationError(
            f"Nickname must be printable ASCII without commas, got {nickname!r}"
        )
    return nickname
