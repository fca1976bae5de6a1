"""Exception types raised by the EBB client."""

from __future__ import annotations


class EBBError(Exception):
    """Base class for all EBB client errors."""


class ValidationError(EBBError, ValueError):
    """A command parameter is outside its documented domain.

    Raised while encoding, before anything is written to the device.
    """


class ProtocolError(EBBError):
    """A device reply does not match the grammar expected for its command."""

    def __init__(self, message: str, response: str = "") -> None:
        super().__init__(message)
        self.response = response


class CommandTimeoutError(EBBError, TimeoutError):
    """The expected reply lines did not arrive within the timeout budget."""

    def __init__(self, command: str, timeout_ms: float) -> None:
        super().__init__(f'Command "{command}" timed out after {timeout_ms:g} ms')
        self.command = command
        self.timeout_ms = timeout_ms


class TransportError(EBBError, ConnectionError):
    """The underlying line transport failed to open, write or stay connected."""
