from __future__ import annotations

import httpx

from moveout_accounts.client import ActivityTracker


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_touch_is_coalesced_within_window():
    calls: list[float] = []
    clock = _Clock()
    tracker = ActivityTracker(lambda: calls.append(clock.now), min_interval=30, clock=clock)

    assert tracker.touch()
    clock.now += 10
    assert not tracker.touch()
    clock.now += 25
    assert tracker.touch()

    assert calls == [1000.0, 1035.0]


def test_failed_report_does_not_start_window():
    clock = _Clock()
    attempts = []

    def send() -> None:
        attempts.append(clock.now)
        if len(attempts) == 1:
            raise httpx.ConnectError("offline")

    tracker = ActivityTracker(send, clock=clock)

    assert not tracker.touch()
    clock.now += 1
    assert tracker.touch()
    assert len(attempts) == 2


def test_touch_skipped_while_request_in_flight():
    clock = _Clock()
    nested: list[bool] = []
    tracker: ActivityTracker

    def send() -> None:
        nested.append(tracker.touch())

    tracker = ActivityTracker(send, clock=clock)

    assert tracker.touch()
    assert nested == [False]


def test_start_reports_immediately_and_stop_joins():
    calls: list[int] = []
    tracker = ActivityTracker(lambda: calls.append(1), heartbeat=0.01)

    tracker.start()
    tracker.stop()

    assert calls
