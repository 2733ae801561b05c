"""Shared API rate budget and retry back-off policy."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from streamsync.core.errors import TransportError

LOGGER = logging.getLogger("Sync.RateLimit")

LOW_WATERMARK = 10
FAST_RETRY_DELAY = 1.0
BUDGET_WAIT_DELAY = 1.0


@dataclass(frozen=True)
class BudgetSnapshot:
    remaining: int
    reset_at: float


class RateBudget:
    """Remaining call allowance for one rate-limited API family.

    Updates replace the whole snapshot, so two responses landing out of
    order can make the budget stale but never mix fields from both.
    """

    def __init__(
        self,
        remaining: int = 30,
        reset_at: float | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._snapshot = BudgetSnapshot(remaining, clock() if reset_at is None else reset_at)

    @property
    def remaining(self) -> int:
        return self._snapshot.remaining

    @property
    def reset_at(self) -> float:
        return self._snapshot.reset_at

    @property
    def snapshot(self) -> BudgetSnapshot:
        return self._snapshot

    def observe(self, remaining: int, reset_at: float) -> None:
        """Last writer wins."""
        self._snapshot = BudgetSnapshot(int(remaining), float(reset_at))

    def observe_headers(self, headers: Mapping[str, str]) -> bool:
        """Refresh from ``ratelimit-remaining`` / ``ratelimit-reset``. Returns True if applied."""
        remaining = headers.get("ratelimit-remaining")
        reset_at = headers.get("ratelimit-reset")
        if remaining is None or reset_at is None:
            return False
        try:
            self.observe(int(remaining), float(reset_at))
        except ValueError:
            LOGGER.debug(f"Ignoring malformed rate limit headers: {remaining!r} / {reset_at!r}")
            return False
        return True

    def can_proceed(self, low_watermark: int = LOW_WATERMARK) -> bool:
        snapshot = self._snapshot
        return not (snapshot.remaining <= low_watermark and self._clock() < snapshot.reset_at)


def retry_delay(error: BaseException, interval: float) -> float:
    """Delay before the next attempt after *error*.

    Refused connections and timeouts retry fast; everything else (HTTP error
    statuses included) waits the call's normal interval.
    """
    if isinstance(error, TransportError) and error.is_fast_retry:
        return FAST_RETRY_DELAY
    return interval
