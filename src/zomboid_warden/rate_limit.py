"""Per-actor, per-command cooldown gate."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of a cooldown check; ``remaining_seconds`` is 0 when allowed."""

    allowed: bool
    remaining_seconds: int = 0

    @property
    def throttled(self) -> bool:
        return not self.allowed


ALLOWED = RateLimitResult(allowed=True)


class RateLimiter:
    """Tracks the last use of each ``(actor_id, action_name)`` pair.

    Entries older than the window are evicted at most once per window, so the map
    only holds actors that were active recently.
    """

    def __init__(
        self,
        window_seconds: float = 120.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._logger = logger or logging.getLogger("zomboid_warden.rate_limit")
        self._last_used: dict[tuple[str, str], float] = {}
        self._last_sweep: float | None = None

    @property
    def window_seconds(self) -> float:
        return self._window

    def __len__(self) -> int:
        return len(self._last_used)

    def check_and_record(
        self,
        actor_id: str,
        action_name: str,
        now: float | None = None,
        *,
        immune: bool = False,
    ) -> RateLimitResult:
        """Allow and record the call, or report how long the actor must wait."""
        if immune:
            return ALLOWED

        now = self._clock() if now is None else now
        self._maybe_evict(now)

        key = (actor_id, action_name)
        last_used = self._last_used.get(key)
        if last_used is not None:
            elapsed = now - last_used
            if elapsed < self._window:
                remaining = math.ceil(self._window - elapsed)
                self._logger.info(
                    "command_throttled",
                    extra={"actor_id": actor_id, "action": action_name, "remaining_seconds": remaining},
                )
                return RateLimitResult(allowed=False, remaining_seconds=remaining)

        self._last_used[key] = now
        return ALLOWED

    def _maybe_evict(self, now: float) -> None:
        if self._last_sweep is not None and now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        expired = [key for key, used in self._last_used.items() if now - used >= self._window]
        for key in expired:
            del self._last_used[key]
        if expired:
            self._logger.debug("cooldown_entries_evicted", extra={"count": len(expired)})
