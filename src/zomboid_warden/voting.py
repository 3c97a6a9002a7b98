"""Time-boxed quorum voting used to gate destructive actions."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from zomboid_warden.adapters.chat import ChatChannel, ChatEvent


class VoteAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"


class VoteStatus(str, Enum):
    """Lifecycle states of a vote; everything except PENDING is terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class VoteSession:
    """Tally of one vote. Mutated only through :meth:`cast` and :meth:`expire`."""

    eligible: Callable[[str], bool]
    required_confirms: int
    required_cancels: int
    deadline: float
    clock: Callable[[], float] = time.monotonic
    confirmed_actors: set[str] = field(default_factory=set)
    canceled_actors: set[str] = field(default_factory=set)
    status: VoteStatus = VoteStatus.PENDING

    @property
    def resolved(self) -> bool:
        return self.status != VoteStatus.PENDING

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, self.deadline - self.clock())

    def cast(self, actor_id: str, action: VoteAction | str) -> bool:
        """Record a vote; return True only when it changed the tally."""
        if self.resolved or not self.eligible(actor_id):
            return False
        if self.clock() >= self.deadline:
            self.expire()
            return False

        action = VoteAction(action)
        target = self.confirmed_actors if action == VoteAction.CONFIRM else self.canceled_actors
        if actor_id in target:
            return False
        target.add(actor_id)
        self._evaluate()
        return True

    def expire(self) -> VoteStatus:
        """Close the vote at the deadline; thresholds are evaluated one last time."""
        if not self.resolved:
            self._evaluate()
        if not self.resolved:
            self.status = VoteStatus.TIMED_OUT
        return self.status

    def _evaluate(self) -> None:
        if len(self.canceled_actors) >= self.required_cancels:
            self.status = VoteStatus.CANCELED
        elif len(self.confirmed_actors) >= self.required_confirms:
            self.status = VoteStatus.CONFIRMED


TallyHook = Callable[[VoteSession], Awaitable[None] | None]


def parse_vote(content: str) -> VoteAction | None:
    text = content.strip().lower()
    try:
        return VoteAction(text)
    except ValueError:
        return None


class ConfirmationProtocol:
    """Starts vote sessions and drives them from a chat message stream."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic, logger: logging.Logger | None = None) -> None:
        self._clock = clock
        self._logger = logger or logging.getLogger("zomboid_warden.voting")

    def start(
        self,
        eligible: Callable[[str], bool],
        required_confirms: int,
        required_cancels: int = 1,
        window_seconds: float = 120.0,
    ) -> VoteSession:
        if required_confirms < 1 or required_cancels < 1:
            raise ValueError("Vote thresholds must be at least 1")
        session = VoteSession(
            eligible=eligible,
            required_confirms=required_confirms,
            required_cancels=required_cancels,
            deadline=self._clock() + window_seconds,
            clock=self._clock,
        )
        self._logger.info(
            "vote_started",
            extra={
                "required_confirms": required_confirms,
                "required_cancels": required_cancels,
                "window_seconds": window_seconds,
            },
        )
        return session

    async def run(
        self,
        session: VoteSession,
        chat: ChatChannel,
        *,
        on_tally: TallyHook | None = None,
    ) -> VoteStatus:
        """Feed votes from ``chat`` into ``session`` until it resolves or times out."""

        def _matches(event: ChatEvent) -> bool:
            return parse_vote(event.content) is not None and session.eligible(event.actor_id)

        events = chat.collect(_matches, timeout=session.remaining_seconds, stop=lambda: session.resolved)
        async for event in events:
            action = parse_vote(event.content)
            if action is None or not session.cast(event.actor_id, action):
                continue
            self._logger.info(
                "vote_cast",
                extra={"actor_id": event.actor_id, "action": action.value, "status": session.status.value},
            )
            if on_tally is not None:
                result = on_tally(session)
                if inspect.isawaitable(result):
                    await result
            if session.resolved:
                break

        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

        status = session.expire()
        self._logger.info(
            "vote_resolved",
            extra={
                "status": status.value,
                "confirms": len(session.confirmed_actors),
                "cancels": len(session.canceled_actors),
            },
        )
        return status
