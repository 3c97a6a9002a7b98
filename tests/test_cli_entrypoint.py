from __future__ import annotations

import importlib
import logging

import pytest

from zomboid_warden.config import Settings
from zomboid_warden.telemetry.logging import ExtraFormatter


def test_console_entrypoint_exposes_app() -> None:
    pytest.importorskip("typer")

    module = importlib.import_module("zomboid_warden.main")

    assert hasattr(module, "app")
    assert module.app is not None


def test_start_masks_secrets(monkeypatch) -> None:
    testing = pytest.importorskip("typer.testing")
    module = importlib.import_module("zomboid_warden.main")
    monkeypatch.setattr(module, "settings", Settings(rcon_password="hunter2", discord_token="tok"))

    result = testing.CliRunner().invoke(module.app, ["start"])

    assert result.exit_code == 0
    assert "hunter2" not in result.output
    assert "***" in result.output


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("ZOMBOID_WARDEN_RCON_PORT", "16261")
    monkeypatch.setenv("ZOMBOID_WARDEN_REQUIRED_CONFIRMS", "5")
    monkeypatch.setenv("ZOMBOID_WARDEN_RESTART_ROLES", '["moderator"]')

    cfg = Settings()

    assert cfg.rcon_port == 16261
    assert cfg.required_confirms == 5
    assert cfg.restart_roles == ["moderator"]
    assert cfg.heartbeat_seconds == 300


def test_settings_accept_comma_separated_roles(monkeypatch) -> None:
    monkeypatch.setenv("ZOMBOID_WARDEN_RESTART_ROLES", "peasant, guardian")
    monkeypatch.setenv("ZOMBOID_WARDEN_ADMIN_ROLES", "admin")

    cfg = Settings()

    assert cfg.restart_roles == ["peasant", "guardian"]
    assert cfg.admin_roles == ["admin"]
    assert cfg.whitelist_roles == ["guardian"]


def test_build_dispatcher_rejects_unknown_strategy() -> None:
    typer = pytest.importorskip("typer")
    module = importlib.import_module("zomboid_warden.main")

    with pytest.raises(typer.BadParameter):
        module.build_dispatcher(Settings(restart_strategy="telnet"), channel=None)


def test_extra_formatter_appends_context() -> None:
    record = logging.makeLogRecord(
        {"name": "zomboid_warden.session", "msg": "rcon_connected", "levelno": logging.INFO, "host": "pz"}
    )

    text = ExtraFormatter("%(name)s: %(message)s").format(record)

    assert text == "zomboid_warden.session: rcon_connected host='pz'"
