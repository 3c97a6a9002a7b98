"""External process supervision over a separate SSH session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

import paramiko

from zomboid_warden.errors import ProcessControlError


class ProcessControl(Protocol):
    """Runs a shell command next to the game server process."""

    async def exec(self, command: str) -> int:
        """Run ``command`` and return its exit status."""


@dataclass(slots=True)
class SshProcessControl:
    """Opens a short-lived paramiko session for every command."""

    host: str
    username: str
    password: str | None = None
    port: int = 22
    key_filename: str | None = None
    connect_timeout_seconds: float = 15.0
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("zomboid_warden.process_control"))

    async def exec(self, command: str) -> int:
        if not self.host:
            raise ProcessControlError("SSH host is not configured")
        self.logger.info("ssh_exec_started", extra={"host": self.host, "command": command})
        try:
            status, stderr = await asyncio.to_thread(self._run, command)
        except (paramiko.SSHException, OSError) as exc:
            raise ProcessControlError(f"SSH command failed on {self.host}: {exc}") from exc

        if status != 0:
            raise ProcessControlError(f"SSH command exited with status {status}: {stderr.strip()}")
        self.logger.info("ssh_exec_succeeded", extra={"host": self.host, "exit_status": status})
        return status

    def _run(self, command: str) -> tuple[int, str]:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_kwargs = {
                "hostname": self.host,
                "port": self.port,
                "username": self.username,
                "timeout": self.connect_timeout_seconds,
                "allow_agent": True,
                "look_for_keys": True,
            }
            if self.password:
                connect_kwargs["password"] = self.password
            if self.key_filename:
                connect_kwargs["key_filename"] = self.key_filename
            client.connect(**connect_kwargs)

            _, stdout, stderr = client.exec_command(command)
            status = stdout.channel.recv_exit_status()
            return status, stderr.read().decode("utf-8", errors="ignore")
        finally:
            client.close()
