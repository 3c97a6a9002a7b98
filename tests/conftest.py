from __future__ import annotations

import asyncio

import pytest

from zomboid_warden.adapters.chat import ChatEvent
from zomboid_warden.errors import SessionConnectError


class FakeTransport:
    """In-memory RCON transport; ``send_errors`` are raised in order before any response."""

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        *,
        send_errors: list[Exception] | None = None,
        fail_connect: bool = False,
        reconnect_error: Exception | None = None,
    ) -> None:
        self.responses = responses or {}
        self.send_errors = list(send_errors or [])
        self.fail_connect = fail_connect
        self.reconnect_error = reconnect_error
        self.sent: list[str] = []
        self.connect_calls = 0
        self.reconnect_calls = 0
        self.close_calls = 0
        self.reconnect_gate: asyncio.Event | None = None

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise SessionConnectError("handshake refused")

    async def reconnect(self) -> None:
        self.reconnect_calls += 1
        if self.reconnect_gate is not None:
            await self.reconnect_gate.wait()
        if self.reconnect_error is not None:
            raise self.reconnect_error

    async def send(self, command: str) -> str:
        self.sent.append(command)
        if self.send_errors:
            raise self.send_errors.pop(0)
        return self.responses.get(command, f"ok: {command}")

    async def close(self) -> None:
        self.close_calls += 1


class FakeChat:
    """Chat collaborator that replays ``events`` from ``collect`` and records output."""

    def __init__(self, events: list[ChatEvent] | None = None, roles: dict[str, set[str]] | None = None) -> None:
        self.events = list(events or [])
        self.roles = roles or {}
        self.posts: list[str] = []
        self.edits: list[tuple[int, str]] = []
        self.deleted: list[ChatEvent] = []

    async def post(self, text: str) -> int:
        self.posts.append(text)
        return len(self.posts) - 1

    async def edit(self, handle: int, text: str) -> None:
        self.edits.append((handle, text))

    async def delete(self, event: ChatEvent) -> bool:
        self.deleted.append(event)
        return True

    def roles_of(self, actor_id: str) -> frozenset[str]:
        return frozenset(self.roles.get(actor_id, set()))

    async def collect(self, predicate, *, timeout: float, stop):
        for event in self.events:
            if stop():
                return
            if predicate(event):
                yield event


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
