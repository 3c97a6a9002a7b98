"""Boundary for RCON transport integrations.

The session layer only talks to :class:`RconTransport`. The shipped
:class:`SourceRconTransport` wraps the blocking client from the ``rcon`` package and
pushes every socket call onto a worker thread, so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from rcon.exceptions import EmptyResponse, SessionTimeout
from rcon.source import Client

from zomboid_warden.errors import SessionConnectError, TransportError


@runtime_checkable
class RconTransport(Protocol):
    """Connected client able to run server console commands."""

    async def connect(self) -> None:
        """Open the session and authenticate."""

    async def send(self, command: str) -> str:
        """Run ``command`` and return the server response."""

    async def close(self) -> None:
        """Release the underlying connection."""


@dataclass(slots=True)
class SourceRconTransport:
    """Source RCON protocol transport (Project Zomboid speaks Source RCON)."""

    host: str
    port: int
    password: str
    timeout_seconds: float | None = 10.0
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("zomboid_warden.rcon"))
    _client: Client | None = field(default=None, init=False, repr=False)

    async def connect(self) -> None:
        await self.close()
        client = Client(self.host, self.port, timeout=self.timeout_seconds, passwd=self.password)
        try:
            await asyncio.to_thread(client.connect, True)
        except Exception as exc:  # noqa: BLE001 - any handshake failure is a connect failure.
            await asyncio.to_thread(client.close)
            raise SessionConnectError(f"RCON connection to {self.host}:{self.port} failed: {exc}") from exc
        self._client = client
        self.logger.info("rcon_socket_opened", extra={"host": self.host, "port": self.port})

    async def reconnect(self) -> None:
        """A closed socket cannot be reused, so reconnecting builds a new client."""
        await self.connect()

    async def send(self, command: str) -> str:
        if self._client is None:
            raise TransportError("RCON client not connected")
        try:
            response = await asyncio.to_thread(self._client.run, command)
        except OSError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        except (EmptyResponse, SessionTimeout) as exc:
            # Peer closed the socket or answered out of sequence; either way the session is gone.
            raise TransportError(f"socket closed: {type(exc).__name__} {exc}".rstrip()) from exc
        return "" if response is None else str(response)

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            await asyncio.to_thread(client.close)
        except OSError:
            self.logger.warning("rcon_socket_close_failed", exc_info=True)
