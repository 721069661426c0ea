"""
Pulse - Process State
======================
Explicitly owned, process-wide mutable state shared by the command
handlers and the digest scheduler.

``RateLimiter``
    Per-user cooldown.  The check and the timestamp write happen in one
    synchronous call, so no other task can interleave between them on
    the event loop.  The table is never evicted.

``BotState``
    Holds the cached global digest and the rate limiter.  Created once
    at startup and injected wherever it is needed.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from pulse.config.settings import settings


class RateLimiter:
    """
    Parameters
    ----------
    cooldown
        Seconds a user must wait between accepted invocations.
    whitelist
        User ids that are never limited.
    clock
        Monotonic time source in seconds (injected for tests).
    """

    __slots__ = ("_cooldown", "_whitelist", "_clock", "_last_seen")

    def __init__(self, cooldown: float | None = None, whitelist: Iterable[str] = (), clock: Callable[[], float] = time.monotonic) -> None:
        self._cooldown = settings.RATE_LIMIT_SECONDS if cooldown is None else cooldown
        self._whitelist = frozenset(whitelist)
        self._clock = clock
        self._last_seen: dict[str, float] = {}


    def try_acquire(self, user_id: str) -> bool:
        """
        Return ``True`` and record the invocation if *user_id* may proceed.

        Rejected calls leave the recorded timestamp untouched.
        """
        now = self._clock()
        last = self._last_seen.get(user_id)
        if last is not None and now - last < self._cooldown and user_id not in self._whitelist:
            return False
        self._last_seen[user_id] = now
        return True


    def __len__(self) -> int:
        return len(self._last_seen)


@dataclass
class BotState:
    """Cached digest + rate-limit table, owned by the running bot."""

    rate_limiter: RateLimiter = field(default_factory=lambda: RateLimiter(whitelist=settings.whitelist_ids))
    cached_digest: str | None = None
