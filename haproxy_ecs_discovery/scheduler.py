"""Fixed-cadence polling loop with randomized backoff on failure."""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable

from .exceptions import DiscoveryError
from .logging_config import watcher_logger

BACKOFF_MIN_SECONDS = 1
BACKOFF_MAX_SECONDS = 5


class PollScheduler:
    """Runs ``cycle`` every ``check_interval`` seconds on a background thread.

    A failed cycle is followed by a random 1-5s pause instead of the regular
    interval, so many watchers failing together do not retry in lockstep.
    Stopping is cooperative: the stop event is checked between cycles and a
    cycle in flight (including its API calls) always runs to completion.
    """

    def __init__(
        self,
        cycle: Callable[[], None],
        check_interval: float,
        name: str = "",
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cycle = cycle
        self._interval = check_interval
        self._name = name
        self._log = watcher_logger(__name__, name)
        self._rng = rng or random.Random()
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name=f"watcher-{self._name}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        """Poll until stop() is called. Never returns because of a cycle error."""
        while not self._stop_event.is_set():
            cycle_start = self._clock()
            try:
                self._cycle()
            except DiscoveryError as exc:
                self.consecutive_failures += 1
                self._log.warning(
                    "Error in aws_ecs watcher thread for %s backends: %s",
                    self._name, exc,
                    exc_info=True,
                    extra={
                        "consecutive_failures": self.consecutive_failures,
                        "operation": getattr(exc, "operation", None),
                    },
                )
                self._sleep(self._backoff())
            except Exception:
                self.consecutive_failures += 1
                self._log.exception(
                    "Unexpected error in aws_ecs watcher thread for %s backends",
                    self._name,
                    extra={"consecutive_failures": self.consecutive_failures},
                )
                self._sleep(self._backoff())
            else:
                self.consecutive_failures = 0
                self._sleep_until_next_check(cycle_start)

        self._log.info("aws_ecs watcher for %s exited successfully", self._name)

    def _backoff(self) -> int:
        return self._rng.randint(BACKOFF_MIN_SECONDS, BACKOFF_MAX_SECONDS)

    def _sleep_until_next_check(self, cycle_start: float) -> None:
        sleep_time = self._interval - (self._clock() - cycle_start)
        if sleep_time > 0.0:
            self._log.debug("Sleeping %.1fs before next check of %s", sleep_time, self._name)
            self._sleep(sleep_time)

    def _sleep(self, seconds: float) -> None:
        """Wait on the stop event so a stop request ends the pause early."""
        self._stop_event.wait(seconds)
