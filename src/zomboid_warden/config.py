"""Runtime configuration for Zomboid Warden."""

import json
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Role lists accept either a JSON array or a comma-separated string from the environment.
RoleList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="ZOMBOID_WARDEN_", env_file=".env", extra="ignore")

    app_name: str = "zomboid-warden"
    log_level: str = "INFO"

    rcon_host: str = "localhost"
    rcon_port: int = 27015
    rcon_password: str = ""
    rcon_timeout_seconds: float = 10.0

    discord_token: str = ""
    command_prefix: str = "!"

    ssh_host: str = ""
    ssh_port: int = 22
    ssh_username: str = ""
    ssh_password: str = ""
    ssh_stop_command: str = Field(
        default="systemctl restart zomboid",
        description="Shell command run over SSH when restart_strategy is 'ssh'.",
    )

    heartbeat_seconds: float = 300.0
    heartbeat_command: str = "players"

    command_cooldown_seconds: float = 120.0
    admin_roles: RoleList = Field(default_factory=lambda: ["admin"])

    restart_strategy: str = Field(default="rcon", description="Final restart action: 'rcon' or 'ssh'.")
    restart_cooldown_seconds: float = 4 * 60 * 60
    vote_window_seconds: float = 120.0
    required_confirms: int = 2
    required_cancels: int = 1
    restart_roles: RoleList = Field(default_factory=lambda: ["peasant", "guardian"])
    whitelist_roles: RoleList = Field(default_factory=lambda: ["guardian"])

    warning_delay_seconds: float = 120.0
    final_delay_seconds: float = 10.0
    warning_broadcast: str = (
        "SERVER RESTART: Force restart initiated by Discord vote. Server will restart in 2 minutes."
    )
    final_broadcast: str = "SERVER RESTART IMMINENT: Saving world and restarting. Please finish what you're doing!"

    @field_validator("admin_roles", "restart_roles", "whitelist_roles", mode="before")
    @classmethod
    def _split_roles(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        text = value.strip()
        if text.startswith("["):
            return json.loads(text)
        return [part.strip() for part in text.split(",") if part.strip()]


settings = Settings()
