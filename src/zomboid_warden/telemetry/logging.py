"""Console logging with structured ``extra`` context rendered inline."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Appends ``key=value`` pairs passed via ``extra`` to the event name."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = {key: value for key, value in vars(record).items() if key not in _RESERVED}
        if not context:
            return message
        pairs = " ".join(f"{key}={value!r}" for key, value in sorted(context.items()))
        return f"{message} {pairs}"


def configure_logging(level: str = "INFO") -> None:
    """Route the ``zomboid_warden`` loggers to a rich console handler."""
    handler = RichHandler(rich_tracebacks=True, show_path=False)
    handler.setFormatter(ExtraFormatter("%(name)s: %(message)s"))

    root = logging.getLogger("zomboid_warden")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    root.propagate = False

    # discord.py is chatty at INFO.
    logging.getLogger("discord").setLevel(max(logging.WARNING, root.level))
