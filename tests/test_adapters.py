from __future__ import annotations

import asyncio
import types

import pytest
from rcon.exceptions import EmptyResponse, SessionTimeout

from zomboid_warden.adapters import process_control, rcon_transport
from zomboid_warden.adapters.process_control import SshProcessControl
from zomboid_warden.adapters.rcon_transport import SourceRconTransport
from zomboid_warden.channel import CommandChannel
from zomboid_warden.errors import ProcessControlError, SessionConnectError, TransportError
from zomboid_warden.session import SessionManager


class _FakeRconClient:
    instances: list["_FakeRconClient"] = []
    fail_login = False
    run_error: Exception | None = None
    run_errors: list[Exception] = []

    def __init__(self, host, port, *, timeout=None, passwd=None) -> None:
        self.host = host
        self.port = port
        self.passwd = passwd
        self.closed = False
        self.commands: list[str] = []
        _FakeRconClient.instances.append(self)

    def connect(self, login: bool = False) -> None:
        if self.fail_login:
            raise RuntimeError("Wrong password")

    def run(self, command: str) -> str:
        self.commands.append(command)
        if self.run_errors:
            raise self.run_errors.pop(0)
        if self.run_error is not None:
            raise self.run_error
        return f"ran {command}"

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_rcon(monkeypatch):
    _FakeRconClient.instances = []
    _FakeRconClient.fail_login = False
    _FakeRconClient.run_error = None
    _FakeRconClient.run_errors = []
    monkeypatch.setattr(rcon_transport, "Client", _FakeRconClient)
    return _FakeRconClient


def test_rcon_transport_sends_through_client(fake_rcon) -> None:
    async def _run() -> str:
        transport = SourceRconTransport(host="pz.example", port=27015, password="pw")
        await transport.connect()
        return await transport.send("players")

    assert asyncio.run(_run()) == "ran players"
    assert fake_rcon.instances[0].passwd == "pw"


def test_rcon_transport_reconnect_replaces_client(fake_rcon) -> None:
    async def _run() -> None:
        transport = SourceRconTransport(host="pz.example", port=27015, password="pw")
        await transport.connect()
        await transport.reconnect()

    asyncio.run(_run())
    assert len(fake_rcon.instances) == 2
    assert fake_rcon.instances[0].closed is True


def test_rcon_transport_login_failure_is_connect_error(fake_rcon) -> None:
    fake_rcon.fail_login = True
    transport = SourceRconTransport(host="pz.example", port=27015, password="bad")

    with pytest.raises(SessionConnectError, match="Wrong password"):
        asyncio.run(transport.connect())
    assert fake_rcon.instances[0].closed is True


def test_rcon_transport_wraps_socket_errors(fake_rcon) -> None:
    fake_rcon.run_error = TimeoutError("timed out")

    async def _run() -> None:
        transport = SourceRconTransport(host="pz.example", port=27015, password="pw")
        await transport.connect()
        await transport.send("players")

    with pytest.raises(TransportError, match="timed out"):
        asyncio.run(_run())


def test_peer_closed_socket_reconnects_and_retries(fake_rcon) -> None:
    fake_rcon.run_errors = [EmptyResponse()]

    async def _run() -> str:
        transport = SourceRconTransport(host="pz.example", port=27015, password="pw")
        session = SessionManager(transport, heartbeat_seconds=3600)
        await session.connect()
        try:
            return await CommandChannel(session).send("players")
        finally:
            await session.shutdown()

    assert asyncio.run(_run()) == "ran players"
    assert len(fake_rcon.instances) == 2
    assert fake_rcon.instances[0].closed is True
    assert fake_rcon.instances[1].commands == ["players"]


def test_out_of_sequence_reply_is_transport_error(fake_rcon) -> None:
    fake_rcon.run_errors = [SessionTimeout("packet ID mismatch")]

    async def _run() -> None:
        transport = SourceRconTransport(host="pz.example", port=27015, password="pw")
        await transport.connect()
        await transport.send("players")

    with pytest.raises(TransportError, match="socket closed"):
        asyncio.run(_run())


def test_rcon_transport_send_before_connect() -> None:
    transport = SourceRconTransport(host="pz.example", port=27015, password="pw")

    with pytest.raises(TransportError, match="not connected"):
        asyncio.run(transport.send("players"))


class _FakeSSHClient:
    exit_status = 0
    instances: list["_FakeSSHClient"] = []

    def __init__(self) -> None:
        self.commands: list[str] = []
        self.connect_kwargs: dict = {}
        self.closed = False
        _FakeSSHClient.instances.append(self)

    def set_missing_host_key_policy(self, policy) -> None:
        self.policy = policy

    def connect(self, **kwargs) -> None:
        self.connect_kwargs = kwargs

    def exec_command(self, command: str):
        self.commands.append(command)
        status = self.exit_status
        stdout = types.SimpleNamespace(channel=types.SimpleNamespace(recv_exit_status=lambda: status))
        stderr = types.SimpleNamespace(read=lambda: b"unit failed\n" if status else b"")
        return None, stdout, stderr

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_ssh(monkeypatch):
    _FakeSSHClient.instances = []
    _FakeSSHClient.exit_status = 0
    monkeypatch.setattr(process_control.paramiko, "SSHClient", _FakeSSHClient)
    return _FakeSSHClient


def test_ssh_process_control_runs_command(fake_ssh) -> None:
    control = SshProcessControl(host="pz.example", username="steam", password="pw")

    status = asyncio.run(control.exec("systemctl restart zomboid"))

    client = fake_ssh.instances[0]
    assert status == 0
    assert client.commands == ["systemctl restart zomboid"]
    assert client.connect_kwargs["password"] == "pw"
    assert client.closed is True


def test_ssh_process_control_nonzero_exit_raises(fake_ssh) -> None:
    fake_ssh.exit_status = 3
    control = SshProcessControl(host="pz.example", username="steam")

    with pytest.raises(ProcessControlError, match="status 3: unit failed"):
        asyncio.run(control.exec("systemctl restart zomboid"))


def test_ssh_process_control_requires_host() -> None:
    with pytest.raises(ProcessControlError, match="not configured"):
        asyncio.run(SshProcessControl(host="", username="steam").exec("true"))
