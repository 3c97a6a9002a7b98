"""Ownership of the single RCON session and its heartbeat."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from zomboid_warden.adapters.rcon_transport import RconTransport
from zomboid_warden.errors import NotConnectedError, ReconnectError, SessionConnectError


class SessionState(str, Enum):
    """Lifecycle states of the RCON session."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class SessionManager:
    """Keeps one RCON session alive for the whole process.

    ``connect`` opens the transport and starts a heartbeat that sends a cheap
    command every ``heartbeat_seconds``. A failed heartbeat schedules a reconnect
    in the background. Concurrent reconnect requests collapse into one attempt:
    a caller that finds a reconnect already in flight returns immediately rather
    than waiting for it.
    """

    def __init__(
        self,
        transport: RconTransport,
        *,
        heartbeat_seconds: float = 300.0,
        heartbeat_command: str = "players",
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._heartbeat_seconds = heartbeat_seconds
        self._heartbeat_command = heartbeat_command
        self._logger = logger or logging.getLogger("zomboid_warden.session")

        self._state = SessionState.DISCONNECTED
        self._reconnecting = False
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def reconnect_in_flight(self) -> bool:
        return self._reconnecting

    async def connect(self) -> None:
        """Open the transport and (re)start the heartbeat."""
        try:
            await self._transport.connect()
        except SessionConnectError:
            self._state = SessionState.DISCONNECTED
            self._logger.exception("rcon_connect_failed")
            raise
        except Exception as exc:  # noqa: BLE001 - normalize adapter-specific handshake errors.
            self._state = SessionState.DISCONNECTED
            self._logger.exception("rcon_connect_failed")
            raise SessionConnectError(str(exc)) from exc

        self._state = SessionState.CONNECTED
        self._logger.info("rcon_connected")
        self._start_heartbeat()

    async def send(self, command: str) -> str:
        """Send ``command`` over the live session; transport errors propagate unchanged."""
        if self._state != SessionState.CONNECTED:
            raise NotConnectedError(f"RCON session not connected (state: {self._state.value})")
        return await self._transport.send(command)

    async def heartbeat_tick(self) -> None:
        """Probe the session once; on failure schedule a reconnect without awaiting it."""
        self._logger.debug("rcon_heartbeat_sent", extra={"command": self._heartbeat_command})
        try:
            await self.send(self._heartbeat_command)
        except Exception:  # noqa: BLE001 - heartbeat failures only trigger a reconnect.
            self._logger.warning("rcon_heartbeat_failed", exc_info=True)
            task = asyncio.create_task(self._reconnect_quietly(), name="rcon-heartbeat-reconnect")
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return
        self._logger.debug("rcon_heartbeat_ok")

    async def reconnect(self) -> None:
        """Re-establish the session unless another reconnect is already in flight."""
        if self._reconnecting:
            self._logger.info("rcon_reconnect_skipped", extra={"reason": "already_in_progress"})
            return

        self._reconnecting = True
        self._state = SessionState.RECONNECTING
        self._logger.info("rcon_reconnect_started")
        try:
            reconnect = getattr(self._transport, "reconnect", None)
            if callable(reconnect):
                await reconnect()
            else:
                await self._transport.connect()
        except Exception as exc:  # noqa: BLE001 - surfaced as ReconnectError.
            self._state = SessionState.DISCONNECTED
            self._logger.error("rcon_reconnect_failed", extra={"error": str(exc)})
            raise ReconnectError(f"Failed to reconnect to RCON: {exc}") from exc
        finally:
            self._reconnecting = False

        self._state = SessionState.CONNECTED
        self._logger.info("rcon_reconnected")
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._start_heartbeat()

    async def shutdown(self) -> None:
        """Stop the heartbeat and close the transport. Safe to call repeatedly."""
        tasks = [task for task in (self._heartbeat_task, *self._background) if task is not None]
        self._heartbeat_task = None
        self._background.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - logged, shutdown continues.
                self._logger.exception("rcon_task_failed_during_shutdown", extra={"task": task.get_name()})

        if self._state != SessionState.DISCONNECTED:
            await self._transport.close()
            self._state = SessionState.DISCONNECTED
            self._logger.info("rcon_session_closed")

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="rcon-heartbeat")
        self._logger.info("rcon_heartbeat_started", extra={"interval_seconds": self._heartbeat_seconds})

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            await self.heartbeat_tick()

    async def _reconnect_quietly(self) -> None:
        try:
            await self.reconnect()
        except ReconnectError:
            # Next heartbeat tick tries again.
            pass
