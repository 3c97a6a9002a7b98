"""Boundary for chat platform integrations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Protocol


@dataclass(slots=True)
class ChatEvent:
    """Inbound chat message reduced to what the command layer needs."""

    actor_id: str
    content: str
    roles: frozenset[str] = frozenset()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw: Any = None

    def has_any_role(self, roles: set[str] | frozenset[str] | list[str]) -> bool:
        wanted = {role.lower() for role in roles}
        return any(role.lower() in wanted for role in self.roles)


class ChatChannel(Protocol):
    """Channel the bot replies into and collects votes from."""

    async def post(self, text: str) -> Any:
        """Post a message and return a handle usable with :meth:`edit`."""

    async def edit(self, handle: Any, text: str) -> None:
        """Replace the text of a previously posted message."""

    async def delete(self, event: ChatEvent) -> bool:
        """Delete an inbound message; return False when not permitted."""

    def roles_of(self, actor_id: str) -> frozenset[str]:
        """Return the lowercased role names currently held by ``actor_id``."""

    def collect(
        self,
        predicate: Callable[[ChatEvent], bool],
        *,
        timeout: float,
        stop: Callable[[], bool],
    ) -> AsyncIterator[ChatEvent]:
        """Yield matching events until ``stop()`` is true or ``timeout`` seconds pass."""
