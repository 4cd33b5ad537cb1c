"""Client-side activity reporting with request coalescing and a heartbeat."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 30.0
HEARTBEAT_SECONDS = 60.0


def http_sender(base_url: str, token: str, timeout: float = 10.0) -> Callable[[], None]:
    """Return a callable that posts to ``/v1/activity`` with the given bearer token."""
    client = httpx.Client(base_url=base_url, timeout=timeout, headers={"Authorization": f"Bearer {token}"})

    def send() -> None:
        response = client.post("/v1/activity")
        response.raise_for_status()

    return send


class ActivityTracker:
    """Report user activity at most once per window, plus a periodic heartbeat.

    ``touch()`` is cheap to call on every interaction event; only one request
    is issued per ``min_interval`` and never while another is in flight.
    """

    def __init__(
        self,
        send: Callable[[], None],
        *,
        min_interval: float = MIN_INTERVAL_SECONDS,
        heartbeat: float = HEARTBEAT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._send = send
        self._min_interval = min_interval
        self._heartbeat = heartbeat
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight = False
        self._last_sent: float | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def touch(self) -> bool:
        """Report activity unless a report is in flight or was sent within the window."""
        now = self._clock()
        with self._lock:
            if self._in_flight:
                return False
            if self._last_sent is not None and now - self._last_sent < self._min_interval:
                return False
            self._in_flight = True
        sent = False
        try:
            self._send()
            sent = True
        except Exception as exc:
            logger.warning("failed to report activity: %s", exc)
        finally:
            with self._lock:
                self._in_flight = False
                if sent:
                    self._last_sent = now
        return sent

    def start(self) -> None:
        """Report once immediately and keep a heartbeat running until :meth:`stop`."""
        self.touch()
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="activity-heartbeat", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._heartbeat)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._heartbeat):
            self.touch()
