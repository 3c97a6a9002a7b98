"""CLI startup entrypoint for Zomboid Warden."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich import print

from zomboid_warden.adapters import SourceRconTransport, SshProcessControl
from zomboid_warden.bot import CommandDispatcher
from zomboid_warden.channel import CommandChannel
from zomboid_warden.config import Settings, settings
from zomboid_warden.errors import SessionConnectError, WardenError
from zomboid_warden.rate_limit import RateLimiter
from zomboid_warden.restart import FinalAction, ProcessControlAction, RconQuitAction, RestartConfig, RestartSequencer
from zomboid_warden.session import SessionManager
from zomboid_warden.telemetry import configure_logging

app = typer.Typer(help="Zomboid Warden: Discord control channel for a Project Zomboid server")

logger = logging.getLogger("zomboid_warden.main")

_SECRET_FIELDS = {"rcon_password", "discord_token", "ssh_password"}


def _build_session(cfg: Settings) -> SessionManager:
    transport = SourceRconTransport(
        host=cfg.rcon_host,
        port=cfg.rcon_port,
        password=cfg.rcon_password,
        timeout_seconds=cfg.rcon_timeout_seconds,
    )
    return SessionManager(
        transport,
        heartbeat_seconds=cfg.heartbeat_seconds,
        heartbeat_command=cfg.heartbeat_command,
    )


def _build_final_action(cfg: Settings, channel: CommandChannel) -> FinalAction:
    strategy = cfg.restart_strategy.lower()
    if strategy == "ssh":
        control = SshProcessControl(
            host=cfg.ssh_host,
            port=cfg.ssh_port,
            username=cfg.ssh_username,
            password=cfg.ssh_password or None,
        )
        return ProcessControlAction(control=control, command=cfg.ssh_stop_command)
    if strategy != "rcon":
        raise typer.BadParameter(f"Unknown restart strategy: {cfg.restart_strategy!r} (expected 'rcon' or 'ssh')")
    return RconQuitAction(channel)


def build_dispatcher(cfg: Settings, channel: CommandChannel) -> CommandDispatcher:
    sequencer = RestartSequencer(
        channel,
        config=RestartConfig.from_settings(cfg),
        final_action=_build_final_action(cfg, channel),
    )
    return CommandDispatcher(
        channel=channel,
        restart=sequencer,
        rate_limiter=RateLimiter(window_seconds=cfg.command_cooldown_seconds),
        prefix=cfg.command_prefix,
        admin_roles=frozenset(cfg.admin_roles),
        whitelist_roles=frozenset(cfg.whitelist_roles),
    )


@app.command()
def start() -> None:
    """Show runtime configuration with secrets masked."""
    values = settings.model_dump()
    for name in _SECRET_FIELDS:
        if values.get(name):
            values[name] = "***"
    print(values)


@app.command()
def run() -> None:
    """Connect to RCON and serve Discord commands until interrupted."""
    from zomboid_warden.adapters.discord_chat import build_discord_client

    configure_logging(settings.log_level)
    if not settings.discord_token:
        print({"error": "Set ZOMBOID_WARDEN_DISCORD_TOKEN to run the bot."})
        raise typer.Exit(code=1)

    async def _serve() -> None:
        session = _build_session(settings)
        channel = CommandChannel(session)
        await session.connect()
        client = build_discord_client(build_dispatcher(settings, channel))
        try:
            await client.start(settings.discord_token)
        finally:
            await client.close()
            await session.shutdown()

    try:
        asyncio.run(_serve())
    except SessionConnectError as exc:
        print({"error": f"Could not connect to RCON: {exc}"})
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("shutdown_requested")


@app.command()
def send(command: str) -> None:
    """Send one console command over RCON and print the response."""
    configure_logging(settings.log_level)

    async def _run() -> str:
        session = _build_session(settings)
        try:
            await session.connect()
            return await CommandChannel(session).send(command)
        finally:
            await session.shutdown()

    try:
        response = asyncio.run(_run())
    except WardenError as exc:
        print({"command": command, "error": str(exc)})
        raise typer.Exit(code=1)
    print({"command": command, "response": response})


if __name__ == "__main__":
    app()
