from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from app.db.enums import HostingStatus, SslStatus
from app.provisioning.polling import (
    StatusPoller,
    is_certificate_terminal,
    is_hosting_terminal,
    poll_hint,
)


@dataclass
class FakeClock:
    now: float = 100.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_poll_once_fetches_at_most_once_per_interval() -> None:
    clock = FakeClock()
    fetches: list[HostingStatus] = []

    def fetch() -> HostingStatus:
        fetches.append(HostingStatus.SUSPENDING)
        return HostingStatus.SUSPENDING

    poller = StatusPoller(fetch, is_hosting_terminal, interval_seconds=3.0, clock=clock)

    first = poller.poll_once()
    clock.now += 1.0
    second = poller.poll_once()
    clock.now += 2.5
    third = poller.poll_once()

    assert first.fetched is True
    assert second.fetched is False
    assert second.status is HostingStatus.SUSPENDING
    assert third.fetched is True
    assert len(fetches) == 2


def test_interval_is_clamped_to_minimum() -> None:
    poller = StatusPoller(lambda: HostingStatus.ACTIVE, is_hosting_terminal, interval_seconds=0.5)

    assert poller.interval_seconds == 3.0


def test_terminal_status_stops_fetching() -> None:
    clock = FakeClock()
    statuses = iter([SslStatus.ISSUING, SslStatus.ISSUED])
    calls: list[int] = []

    def fetch() -> SslStatus:
        calls.append(1)
        return next(statuses)

    poller = StatusPoller(fetch, is_certificate_terminal, clock=clock, sleep=clock.sleep)

    result = poller.run()
    clock.now += 60
    after = poller.poll_once()

    assert result is SslStatus.ISSUED
    assert after.fetched is False
    assert after.status is SslStatus.ISSUED
    assert len(calls) == 2
    assert clock.sleeps == [3.0]


def test_run_stops_after_max_polls() -> None:
    clock = FakeClock()
    poller = StatusPoller(
        lambda: HostingStatus.PENDING,
        is_hosting_terminal,
        clock=clock,
        sleep=clock.sleep,
    )

    assert poller.run(max_polls=3) is HostingStatus.PENDING
    assert len(clock.sleeps) == 2
    observation = poller.last_observation
    assert observation is not None
    assert observation.status is HostingStatus.PENDING


@pytest.mark.parametrize(
    ("status", "terminal"),
    [
        (HostingStatus.PENDING, False),
        (HostingStatus.SUSPENDING, False),
        (HostingStatus.REACTIVATING, False),
        (HostingStatus.ACTIVE, True),
        (HostingStatus.SUSPENDED, True),
        (HostingStatus.DELETED, True),
    ],
)
def test_is_hosting_terminal(status: HostingStatus, terminal: bool) -> None:
    assert is_hosting_terminal(status) is terminal


@pytest.mark.parametrize(
    ("status", "terminal"),
    [
        (SslStatus.PENDING_VERIFICATION, False),
        (SslStatus.VERIFYING, False),
        (SslStatus.VERIFIED, False),
        (SslStatus.ISSUING, False),
        (SslStatus.ISSUED, True),
        (SslStatus.FAILED, True),
        (SslStatus.EXPIRED, True),
        (SslStatus.REVOKED, True),
    ],
)
def test_is_certificate_terminal(status: SslStatus, terminal: bool) -> None:
    assert is_certificate_terminal(status) is terminal


def test_poll_hint() -> None:
    assert poll_hint(terminal=False) == {"refetch_interval_ms": 3000}
    assert poll_hint(terminal=False, interval_seconds=10) == {"refetch_interval_ms": 10000}
    assert poll_hint(terminal=False, interval_seconds=1) == {"refetch_interval_ms": 3000}
    assert poll_hint(terminal=True) == {"refetch_interval_ms": None}
