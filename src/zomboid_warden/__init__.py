"""Discord control channel for a Project Zomboid dedicated server."""

__version__ = "0.1.0"
