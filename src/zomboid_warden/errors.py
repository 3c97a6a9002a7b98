"""Error taxonomy shared by the session, channel and restart layers."""

from __future__ import annotations


class WardenError(Exception):
    """Base class for all Zomboid Warden failures."""


class SessionConnectError(WardenError, ConnectionError):
    """Raised when the initial RCON handshake fails."""


class TransportError(WardenError):
    """Transient transport failure raised by RCON adapters."""


class ReconnectError(WardenError):
    """Raised when an attempt to re-establish the RCON session fails."""


class NotConnectedError(WardenError):
    """Raised when a command is sent without an established session."""


class CommandFailedError(WardenError):
    """A command failed for a non-transient reason or failed again after one retry.

    The message is the original error's message verbatim and the original
    exception is kept as ``__cause__``.
    """

    def __init__(self, command: str, message: str) -> None:
        super().__init__(message)
        self.command = command


class ProcessControlError(WardenError):
    """Raised when the external process-control command fails."""


class StageFailure(WardenError):
    """A restart stage failed after the vote passed; remaining stages were skipped."""

    def __init__(self, stage: str, completed: list[str], message: str) -> None:
        super().__init__(f"Stage '{stage}' failed: {message}")
        self.stage = stage
        self.completed = list(completed)
