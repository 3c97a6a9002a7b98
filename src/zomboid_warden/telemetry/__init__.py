"""Logging setup for the bot and CLI."""

from .logging import configure_logging

__all__ = ["configure_logging"]
