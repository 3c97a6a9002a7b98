"""Collaborator adapters: RCON transport, chat platform and process control."""

from .chat import ChatChannel, ChatEvent
from .process_control import ProcessControl, SshProcessControl
from .rcon_transport import RconTransport, SourceRconTransport

__all__ = [
    "ChatChannel",
    "ChatEvent",
    "ProcessControl",
    "RconTransport",
    "SourceRconTransport",
    "SshProcessControl",
]
