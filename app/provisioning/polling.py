"""Pull-based observation of in-progress lifecycle transitions."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from app.config import MIN_POLL_INTERVAL_SECONDS
from app.db.enums import (
    IN_FLIGHT_HOSTING_STATUSES,
    TERMINAL_SSL_STATUSES,
    HostingStatus,
    SslStatus,
)

S = TypeVar("S", bound=StrEnum)


@dataclass(frozen=True, slots=True)
class PollObservation(Generic[S]):
    status: S
    observed_at: float
    fetched: bool


class StatusPoller(Generic[S]):
    """Fetches a status at most once per interval until it becomes terminal.

    Calls arriving before the interval has elapsed get the cached observation,
    so callers may invoke `poll_once` as often as they like.
    """

    def __init__(
        self,
        fetch: Callable[[], S],
        is_terminal: Callable[[S], bool],
        *,
        interval_seconds: float = MIN_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetch = fetch
        self._is_terminal = is_terminal
        self.interval_seconds = max(MIN_POLL_INTERVAL_SECONDS, interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last: PollObservation[S] | None = None

    @property
    def last_observation(self) -> PollObservation[S] | None:
        return self._last

    def should_stop_polling(self, status: S) -> bool:
        return self._is_terminal(status)

    def poll_once(self) -> PollObservation[S]:
        now = self._clock()
        last = self._last
        if last is not None and (
            self.should_stop_polling(last.status)
            or now - last.observed_at < self.interval_seconds
        ):
            return PollObservation(status=last.status, observed_at=last.observed_at, fetched=False)

        observation = PollObservation(status=self._fetch(), observed_at=now, fetched=True)
        self._last = observation
        return observation

    def run(self, *, max_polls: int | None = None) -> S:
        """Block until a terminal status is observed or `max_polls` fetches happened."""
        fetches = 0
        while True:
            observation = self.poll_once()
            if observation.fetched:
                fetches += 1
            if self.should_stop_polling(observation.status):
                return observation.status
            if max_polls is not None and fetches >= max_polls:
                return observation.status
            elapsed = self._clock() - observation.observed_at
            self._sleep(max(0.0, self.interval_seconds - elapsed))


def is_hosting_terminal(status: HostingStatus) -> bool:
    return status not in IN_FLIGHT_HOSTING_STATUSES


def is_certificate_terminal(status: SslStatus) -> bool:
    return status in TERMINAL_SSL_STATUSES


def poll_hint(
    *,
    terminal: bool,
    interval_seconds: float = MIN_POLL_INTERVAL_SECONDS,
) -> dict[str, int | None]:
    """Client-facing refetch hint; null once the record has settled."""
    if terminal:
        return {"refetch_interval_ms": None}
    return {"refetch_interval_ms": int(max(MIN_POLL_INTERVAL_SECONDS, interval_seconds) * 1000)}
