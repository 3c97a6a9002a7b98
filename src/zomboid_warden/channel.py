"""Command sending with a single reconnect-and-retry for transient failures."""

from __future__ import annotations

import logging

from zomboid_warden.errors import CommandFailedError, NotConnectedError
from zomboid_warden.session import SessionManager, SessionState

TRANSIENT_MARKERS = (
    "socket closed",
    "connection reset",
    "econnreset",
    "websocket",
    "not connected",
    "timeout",
    "timed out",
    "broken pipe",
)


def is_transient(error: BaseException) -> bool:
    """Return True when the error message looks like a dropped or stalled session."""
    text = str(error).lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


class CommandChannel:
    """Sends commands through the live session, retrying once through a reconnect.

    Only one retry is ever attempted per call. Persistent outages are left to the
    session heartbeat rather than to callers.
    """

    def __init__(self, session: SessionManager, *, logger: logging.Logger | None = None) -> None:
        self._session = session
        self._logger = logger or logging.getLogger("zomboid_warden.channel")

    @property
    def session(self) -> SessionManager:
        return self._session

    async def send(self, command: str) -> str:
        if self._session.state == SessionState.DISCONNECTED:
            raise NotConnectedError("RCON session has not been established")

        try:
            return await self._session.send(command)
        except Exception as exc:  # noqa: BLE001 - classified below.
            if not is_transient(exc):
                self._logger.error("rcon_command_failed", extra={"command": command, "error": str(exc)})
                raise CommandFailedError(command, str(exc)) from exc
            self._logger.warning("rcon_transient_failure", extra={"command": command, "error": str(exc)})

        await self._session.reconnect()
        self._logger.info("rcon_command_retry", extra={"command": command})
        try:
            return await self._session.send(command)
        except Exception as exc:  # noqa: BLE001 - second failure is final.
            self._logger.error("rcon_command_retry_failed", extra={"command": command, "error": str(exc)})
            raise CommandFailedError(command, str(exc)) from exc
