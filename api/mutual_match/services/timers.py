import logging
import threading
from datetime import datetime
from typing import Callable

from ..config import MATCH_TIMEZONE
from .epochs import epoch_end, epoch_id, seconds_until

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``fn`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, name: str, interval: float, fn: Callable[[], None]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._fn = fn
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

    def run_once(self) -> None:
        self.runs += 1
        try:
            self._fn()
        except Exception:
            # next tick retries
            logger.exception("[timer] %s failed", self.name)

    def cancel(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None


class EpochTimer:
    """Countdown to the end of the current epoch."""

    def __init__(self, clock: Callable[[], datetime], tz: str = MATCH_TIMEZONE) -> None:
        self._clock = clock
        self._tz = tz
        self.epoch_id: str | None = None
        self.epoch_end: datetime | None = None
        self.remaining_seconds = 0
        self.can_generate = False

    def reset(self) -> int:
        now = self._clock()
        self.epoch_id = epoch_id(now, self._tz)
        self.epoch_end = epoch_end(now, self._tz)
        self.remaining_seconds = seconds_until(self.epoch_end, now)
        return self.remaining_seconds

    def arm(self, has_view: bool) -> None:
        self.reset()
        self.can_generate = not has_view

    def tick(self) -> bool:
        """Advance the countdown. Returns True on the tick that reaches the epoch end."""
        if self.epoch_end is None:
            self.reset()
        if self.remaining_seconds == 0 and self.can_generate:
            return False
        self.remaining_seconds = seconds_until(self.epoch_end, self._clock())
        if self.remaining_seconds > 0:
            return False
        self.can_generate = True
        logger.info("[timer] epoch %s ended, new matches allowed", self.epoch_id)
        return True
