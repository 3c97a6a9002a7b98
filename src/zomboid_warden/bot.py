"""Chat command dispatch for the operator bot."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from zomboid_warden.adapters.chat import ChatChannel, ChatEvent
from zomboid_warden.channel import CommandChannel
from zomboid_warden.errors import WardenError
from zomboid_warden.rate_limit import RateLimiter
from zomboid_warden.restart import RestartSequencer


@dataclass(slots=True)
class ParsedCommand:
    name: str
    args: list[str]


def parse_command(content: str, prefix: str) -> ParsedCommand | None:
    """Split ``!name arg1 arg2`` into a lowercased name and its arguments."""
    if not prefix or not content.startswith(prefix):
        return None
    parts = content[len(prefix) :].split()
    if not parts:
        return None
    return ParsedCommand(name=parts[0].lower(), args=parts[1:])


Handler = Callable[[ChatEvent, ParsedCommand, ChatChannel], Awaitable[None]]


class CommandDispatcher:
    """Routes prefixed chat messages to RCON commands and the restart vote."""

    def __init__(
        self,
        *,
        channel: CommandChannel,
        restart: RestartSequencer,
        rate_limiter: RateLimiter,
        prefix: str = "!",
        admin_roles: frozenset[str] = frozenset({"admin"}),
        whitelist_roles: frozenset[str] = frozenset({"guardian"}),
        logger: logging.Logger | None = None,
    ) -> None:
        self._channel = channel
        self._restart = restart
        self._rate_limiter = rate_limiter
        self._prefix = prefix
        self._admin_roles = frozenset(role.lower() for role in admin_roles)
        self._whitelist_roles = frozenset(role.lower() for role in whitelist_roles)
        self._logger = logger or logging.getLogger("zomboid_warden.bot")
        self._handlers: dict[str, Handler] = {
            "help": self._help,
            "ping": self._ping,
            "players": self._players,
            "restart": self._restart_command,
            "adduser": self._add_user,
            "removeuserfromwhitelist": self._remove_user,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._handlers)

    async def handle(self, event: ChatEvent, chat: ChatChannel) -> bool:
        """Handle one inbound message; return True when it was a known command."""
        parsed = parse_command(event.content, self._prefix)
        if parsed is None:
            return False
        handler = self._handlers.get(parsed.name)
        if handler is None:
            return False

        decision = self._rate_limiter.check_and_record(
            event.actor_id,
            parsed.name,
            immune=event.has_any_role(self._admin_roles),
        )
        if decision.throttled:
            await chat.post(
                f"Please wait {decision.remaining_seconds} seconds before using "
                f"`{self._prefix}{parsed.name}` again."
            )
            return True

        self._logger.info("command_received", extra={"actor_id": event.actor_id, "command": parsed.name})
        await handler(event, parsed, chat)
        return True

    async def _help(self, event: ChatEvent, parsed: ParsedCommand, chat: ChatChannel) -> None:
        p = self._prefix
        confirms = self._restart.config.required_confirms
        await chat.post(
            "**Zomboid Warden - Command List**\n\n"
            "**General Commands:**\n"
            f"`{p}help` - Shows this help message\n"
            f"`{p}ping` - Check bot response time\n"
            f"`{p}players` - Show currently online players\n"
            f"`{p}restart` - Initiate server restart (requires {confirms} user confirmations)\n\n"
            "**Admin Commands:**\n"
            f"`{p}adduser <username> <password>` - Add a user to the whitelist\n"
            f"`{p}removeuserfromwhitelist <username>` - Remove a user from the whitelist\n\n"
            "**Note:** Server commands may take a moment to process depending on server load."
        )

    async def _ping(self, event: ChatEvent, parsed: ParsedCommand, chat: ChatChannel) -> None:
        started = time.perf_counter()
        reply = await chat.post("Pinging...")
        latency_ms = round((time.perf_counter() - started) * 1000)
        await chat.edit(reply, f"Pong! Bot latency: {latency_ms}ms")

    async def _players(self, event: ChatEvent, parsed: ParsedCommand, chat: ChatChannel) -> None:
        try:
            response = await self._channel.send("players")
        except WardenError as exc:
            self._logger.error("players_failed", extra={"error": str(exc)})
            await chat.post(f"Error fetching players list: {exc}")
            return
        await chat.post(f"Players online: {response or 'None'}")

    async def _restart_command(self, event: ChatEvent, parsed: ParsedCommand, chat: ChatChannel) -> None:
        roles = self._restart.config.eligible_roles
        if not event.has_any_role(roles):
            await chat.post(f"You need one of these roles to use this command: {', '.join(sorted(roles))}.")
            return
        result = await self._restart.request(event, chat)
        self._logger.info("restart_request_finished", extra={"actor_id": event.actor_id, "result": result.value})

    async def _add_user(self, event: ChatEvent, parsed: ParsedCommand, chat: ChatChannel) -> None:
        if not event.has_any_role(self._whitelist_roles):
            await chat.post(self._role_required())
            return
        if len(parsed.args) < 2:
            await chat.post(f"Missing arguments! Usage: `{self._prefix}adduser <username> <password>`")
            return

        username, password = parsed.args[0], parsed.args[1]
        try:
            response = await self._channel.send(f'adduser "{username}" "{password}"')
            await chat.post(f"User command executed: {response or 'Command sent, but no response received.'}")
        except WardenError as exc:
            self._logger.error("adduser_failed", extra={"username": username, "error": str(exc)})
            await chat.post(f"Error adding user: {exc}")
        finally:
            # The source message holds a password.
            if await chat.delete(event):
                await chat.post("Original message deleted for security.")

    async def _remove_user(self, event: ChatEvent, parsed: ParsedCommand, chat: ChatChannel) -> None:
        if not event.has_any_role(self._whitelist_roles):
            await chat.post(self._role_required())
            return
        if not parsed.args:
            await chat.post(f"Missing arguments! Usage: `{self._prefix}removeuserfromwhitelist <username>`")
            return

        username = parsed.args[0]
        try:
            response = await self._channel.send(f'removeuserfromwhitelist "{username}"')
        except WardenError as exc:
            self._logger.error("removeuser_failed", extra={"username": username, "error": str(exc)})
            await chat.post(f"Error removing user from whitelist: {exc}")
            return
        await chat.post(f"User removed from whitelist: {response or 'Command sent, but no response received.'}")

    def _role_required(self) -> str:
        return f"You need one of these roles to use this command: {', '.join(sorted(self._whitelist_roles))}."
