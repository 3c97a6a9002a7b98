"""Vote-gated, staged server restart."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Protocol

from zomboid_warden.adapters.chat import ChatChannel, ChatEvent
from zomboid_warden.adapters.process_control import ProcessControl
from zomboid_warden.channel import CommandChannel
from zomboid_warden.config import Settings
from zomboid_warden.errors import StageFailure
from zomboid_warden.voting import ConfirmationProtocol, VoteSession, VoteStatus


class FinalAction(Protocol):
    """Last stage of the restart: actually stops the server process."""

    name: str

    async def __call__(self) -> str:
        """Perform the stop and return a short description of what happened."""


@dataclass(slots=True)
class RconQuitAction:
    """Asks the server to save and quit through the RCON session."""

    channel: CommandChannel
    command: str = "quit"
    name: str = "rcon_quit"

    async def __call__(self) -> str:
        response = await self.channel.send(self.command)
        return response or "quit sent"


@dataclass(slots=True)
class ProcessControlAction:
    """Restarts the server through an external supervisor reached over SSH."""

    control: ProcessControl
    command: str
    name: str = "process_control"

    async def __call__(self) -> str:
        status = await self.control.exec(self.command)
        return f"exit status {status}"


@dataclass(slots=True)
class RestartConfig:
    required_confirms: int = 2
    required_cancels: int = 1
    vote_window_seconds: float = 120.0
    cooldown_seconds: float = 4 * 60 * 60
    warning_delay_seconds: float = 120.0
    final_delay_seconds: float = 10.0
    warning_broadcast: str = "SERVER RESTART: Force restart initiated by Discord vote. Server will restart in 2 minutes."
    final_broadcast: str = "SERVER RESTART IMMINENT: Saving world and restarting. Please finish what you're doing!"
    eligible_roles: frozenset[str] = frozenset({"peasant", "guardian"})

    @classmethod
    def from_settings(cls, settings: Settings) -> RestartConfig:
        return cls(
            required_confirms=settings.required_confirms,
            required_cancels=settings.required_cancels,
            vote_window_seconds=settings.vote_window_seconds,
            cooldown_seconds=settings.restart_cooldown_seconds,
            warning_delay_seconds=settings.warning_delay_seconds,
            final_delay_seconds=settings.final_delay_seconds,
            warning_broadcast=settings.warning_broadcast,
            final_broadcast=settings.final_broadcast,
            eligible_roles=frozenset(role.lower() for role in settings.restart_roles),
        )


@dataclass(slots=True)
class RestartRequest:
    """Process-wide restart cooldown; only a completed sequence updates it."""

    cooldown_seconds: float
    last_restart_at: float | None = None

    def remaining_seconds(self, now: float) -> float:
        if self.last_restart_at is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (now - self.last_restart_at))


class RestartResult(str, Enum):
    ON_COOLDOWN = "on_cooldown"
    BUSY = "busy"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(slots=True)
class RestartStage:
    name: str
    delay_seconds: float
    run: Callable[[], Awaitable[str | None]]
    announce: str | None = None


@dataclass(slots=True)
class SequenceProgress:
    completed: list[str] = field(default_factory=list)
    current: str | None = None


class RestartSequencer:
    """Runs the restart vote and, once confirmed, the warning/stop sequence.

    Every stage runs as its own task kept on the instance, so :meth:`abort` can
    cancel whichever stage (including its leading delay) is in flight.
    """

    def __init__(
        self,
        channel: CommandChannel,
        *,
        config: RestartConfig | None = None,
        final_action: FinalAction | None = None,
        protocol: ConfirmationProtocol | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._channel = channel
        self._config = config or RestartConfig()
        self._final_action = final_action or RconQuitAction(channel)
        self._protocol = protocol or ConfirmationProtocol(clock=clock)
        self._clock = clock
        self._logger = logger or logging.getLogger("zomboid_warden.restart")

        self.request_state = RestartRequest(cooldown_seconds=self._config.cooldown_seconds)
        self.progress = SequenceProgress()
        self._stage_task: asyncio.Task[str | None] | None = None
        self._busy = False
        self._aborted = False

    @property
    def config(self) -> RestartConfig:
        return self._config

    @property
    def in_progress(self) -> bool:
        return self._busy

    def cooldown_remaining(self) -> float:
        return self.request_state.remaining_seconds(self._clock())

    async def request(self, event: ChatEvent, chat: ChatChannel) -> RestartResult:
        """Handle a ``restart`` command from ``event`` end to end."""
        remaining = self.cooldown_remaining()
        if remaining > 0:
            minutes = math.ceil(remaining / 60)
            await chat.post(
                f"Server restart is on cooldown. Please wait {minutes} more minutes before restarting again."
            )
            return RestartResult.ON_COOLDOWN
        if self._busy:
            await chat.post("A server restart vote or sequence is already in progress.")
            return RestartResult.BUSY

        self._busy = True
        try:
            return await self._vote_and_restart(event, chat)
        finally:
            self._busy = False

    async def run_sequence(self, chat: ChatChannel | None = None) -> None:
        """Run every stage in order; raise :class:`StageFailure` on the first failure."""
        self._aborted = False
        self.progress = SequenceProgress()
        for stage in self._build_stages():
            self.progress.current = stage.name
            self._stage_task = asyncio.create_task(self._run_stage(stage), name=f"restart-stage-{stage.name}")
            try:
                await self._stage_task
            except asyncio.CancelledError:
                self._logger.warning("restart_stage_aborted", extra={"stage": stage.name})
                raise
            except Exception as exc:  # noqa: BLE001 - wrapped with partial-progress detail.
                self._logger.exception(
                    "restart_stage_failed",
                    extra={"stage": stage.name, "completed": list(self.progress.completed)},
                )
                raise StageFailure(stage.name, self.progress.completed, str(exc)) from exc
            finally:
                self._stage_task = None

            self.progress.completed.append(stage.name)
            self._logger.info("restart_stage_completed", extra={"stage": stage.name})
            if chat is not None and stage.announce:
                await chat.post(stage.announce)

        self.progress.current = None
        self.request_state.last_restart_at = self._clock()

    def abort(self) -> bool:
        """Cancel the stage currently in flight; return False when nothing is running."""
        if self._stage_task is None or self._stage_task.done():
            return False
        self._aborted = True
        self._stage_task.cancel()
        return True

    def tally_text(self, session: VoteSession) -> str:
        confirms = f"{len(session.confirmed_actors)}/{session.required_confirms}"
        cancels = f"{len(session.canceled_actors)}/{session.required_cancels}"
        window = round(self._config.vote_window_seconds)
        return (
            "**Force Restart Requested!**\n"
            "This command is for emergency use only.\n\n"
            f"**{confirms}** confirms | **{cancels}** cancels\n"
            f"Type `confirm` or `cancel` within {window} seconds.\n"
            f"**Note:** At least {session.required_confirms} different users must confirm, "
            f"or {session.required_cancels} must cancel."
        )

    async def _vote_and_restart(self, event: ChatEvent, chat: ChatChannel) -> RestartResult:
        roles = self._config.eligible_roles
        session = self._protocol.start(
            eligible=lambda actor_id: bool(chat.roles_of(actor_id) & roles),
            required_confirms=self._config.required_confirms,
            required_cancels=self._config.required_cancels,
            window_seconds=self._config.vote_window_seconds,
        )
        self._logger.info("restart_vote_requested", extra={"actor_id": event.actor_id})
        vote_message = await chat.post(self.tally_text(session))

        async def _on_tally(current: VoteSession) -> None:
            await chat.edit(vote_message, self.tally_text(current))

        status = await self._protocol.run(session, chat, on_tally=_on_tally)
        confirms = f"{len(session.confirmed_actors)}/{session.required_confirms}"
        cancels = f"{len(session.canceled_actors)}/{session.required_cancels}"

        if status == VoteStatus.CANCELED:
            await chat.edit(vote_message, f"Restart canceled. Received {cancels} cancels.")
            await chat.post("Server restart vote has been canceled by users.")
            return RestartResult.CANCELED
        if status != VoteStatus.CONFIRMED:
            await chat.edit(
                vote_message,
                f"Restart not confirmed. Only {confirms} confirms and {cancels} cancels received.",
            )
            return RestartResult.TIMED_OUT

        await chat.post(
            f"Confirmed by {len(session.confirmed_actors)} users! Initiating server restart sequence..."
        )
        try:
            await self.run_sequence(chat)
        except StageFailure as exc:
            done = ", ".join(exc.completed) or "none"
            await chat.post(f"Error during restart: {exc} (completed stages: {done})")
            return RestartResult.FAILED
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            done = ", ".join(self.progress.completed) or "none"
            await chat.post(f"Restart sequence aborted during {self.progress.current} (completed stages: {done})")
            return RestartResult.ABORTED
        return RestartResult.COMPLETED

    def _build_stages(self) -> list[RestartStage]:
        cfg = self._config
        warning_minutes = cfg.warning_delay_seconds / 60
        return [
            RestartStage(
                name="warning_broadcast",
                delay_seconds=0.0,
                run=lambda: self._broadcast(cfg.warning_broadcast),
                announce=f"In-game notification sent. Waiting {warning_minutes:g} minutes before restart...",
            ),
            RestartStage(
                name="final_broadcast",
                delay_seconds=cfg.warning_delay_seconds,
                run=lambda: self._broadcast(cfg.final_broadcast),
                announce=f"Final warning sent. Restarting server in {cfg.final_delay_seconds:g} seconds...",
            ),
            RestartStage(
                name=self._final_action.name,
                delay_seconds=cfg.final_delay_seconds,
                run=self._final_action,
                announce="Server restart command sent successfully.",
            ),
        ]

    async def _broadcast(self, text: str) -> str:
        escaped = text.replace('"', "'")
        return await self._channel.send(f'servermsg "{escaped}"')

    async def _run_stage(self, stage: RestartStage) -> str | None:
        if stage.delay_seconds > 0:
            await asyncio.sleep(stage.delay_seconds)
        return await stage.run()
