"""Discord chat adapter built on ``discord.py``."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Callable

import discord

from zomboid_warden.adapters.chat import ChatEvent

# Discord rejects longer message bodies.
DISCORD_MAX_MESSAGE_LENGTH = 2000


def event_from_message(message: discord.Message) -> ChatEvent:
    """Reduce a gateway message to a :class:`ChatEvent`."""
    roles = getattr(message.author, "roles", None) or []
    return ChatEvent(
        actor_id=str(message.author.id),
        content=message.content or "",
        roles=frozenset(role.name.lower() for role in roles),
        timestamp=message.created_at,
        raw=message,
    )


def _clip(text: str) -> str:
    if len(text) <= DISCORD_MAX_MESSAGE_LENGTH:
        return text
    return text[: DISCORD_MAX_MESSAGE_LENGTH - 3] + "..."


class DiscordChatChannel:
    """:class:`~zomboid_warden.adapters.chat.ChatChannel` over one Discord text channel."""

    def __init__(
        self,
        client: discord.Client,
        channel: discord.abc.Messageable,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._channel = channel
        self._logger = logger or logging.getLogger("zomboid_warden.discord")
        self._seen_roles: dict[str, frozenset[str]] = {}

    async def post(self, text: str) -> discord.Message:
        return await self._channel.send(_clip(text))

    async def edit(self, handle: discord.Message, text: str) -> None:
        await handle.edit(content=_clip(text))

    async def delete(self, event: ChatEvent) -> bool:
        message = event.raw
        if message is None:
            return False
        try:
            await message.delete()
        except (discord.Forbidden, discord.NotFound):
            self._logger.warning("discord_delete_failed", extra={"actor_id": event.actor_id}, exc_info=True)
            return False
        return True

    def roles_of(self, actor_id: str) -> frozenset[str]:
        guild = getattr(self._channel, "guild", None)
        member = guild.get_member(int(actor_id)) if guild is not None else None
        if member is None:
            # Without the members intent the cache may be empty; fall back to roles seen on messages.
            return self._seen_roles.get(actor_id, frozenset())
        return frozenset(role.name.lower() for role in member.roles)

    async def collect(
        self,
        predicate: Callable[[ChatEvent], bool],
        *,
        timeout: float,
        stop: Callable[[], bool],
    ) -> AsyncIterator[ChatEvent]:
        deadline = time.monotonic() + timeout
        channel_id = getattr(self._channel, "id", None)

        def _check(message: discord.Message) -> bool:
            if message.author.bot or message.channel.id != channel_id:
                return False
            event = event_from_message(message)
            self._seen_roles[event.actor_id] = event.roles
            return predicate(event)

        while not stop():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            try:
                message = await self._client.wait_for("message", check=_check, timeout=remaining)
            except asyncio.TimeoutError:
                return
            yield event_from_message(message)


def build_discord_client(dispatcher, *, logger: logging.Logger | None = None) -> discord.Client:
    """Create a gateway client that forwards every guild message to ``dispatcher``."""
    logger = logger or logging.getLogger("zomboid_warden.discord")
    intents = discord.Intents.default()
    intents.message_content = True
    intents.members = True
    client = discord.Client(intents=intents)

    @client.event
    async def on_ready() -> None:
        logger.info("discord_ready", extra={"user": str(client.user)})

    @client.event
    async def on_message(message: discord.Message) -> None:
        if message.author.bot:
            return
        chat = DiscordChatChannel(client, message.channel, logger=logger)
        try:
            await dispatcher.handle(event_from_message(message), chat)
        except Exception:  # noqa: BLE001 - report and keep the gateway handler alive.
            logger.exception("command_handler_crashed", extra={"message_id": message.id})
            await chat.post("Unexpected error while handling that command.")

    return client
