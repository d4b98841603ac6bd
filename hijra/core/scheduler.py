"""
Trailing-edge debounce for background sync, plus an optional periodic retry.
One cancelable timer per scheduler; every schedule() replaces the pending one.
"""
import logging
import threading
from datetime import datetime
from threading import Timer
from typing import Any, Callable, Dict, Optional

DEFAULT_DEBOUNCE_MS = 2000


class SyncScheduler:
    def __init__(self, callback: Callable[[], Any], debounce_ms: int = DEFAULT_DEBOUNCE_MS):
        self.callback = callback
        self.debounce_ms = debounce_ms
        self.logger = logging.getLogger("SyncScheduler")
        self._lock = threading.Lock()
        self._timer: Optional[Timer] = None
        self._generation = 0
        self._periodic: Optional[Timer] = None
        self._periodic_interval: Optional[float] = None
        self.run_count = 0
        self.last_run: Optional[datetime] = None

    @property
    def pending(self) -> bool:
        """True while a debounced run is waiting for its quiet window to elapse."""
        with self._lock:
            return self._timer is not None

    def set_debounce_ms(self, debounce_ms: int) -> None:
        """Change the quiet window; applies to the next schedule() call."""
        self.logger.info(f"Debounce window set to {debounce_ms} ms")
        self.debounce_ms = debounce_ms

    def schedule(self) -> None:
        """Run the callback once no further schedule() call arrives within the quiet window."""
        delay = max(0, self.debounce_ms) / 1000.0
        with self._lock:
            if self._timer is not None:
                self.logger.debug("Cancelling pending sync timer")
                self._timer.cancel()
            self._generation += 1
            timer = Timer(delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()
        self.logger.debug(f"Sync scheduled in {delay:.3f}s")

    def cancel(self) -> bool:
        """Drop the pending run, if any. Returns True if something was cancelled."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
            return True

    def flush(self) -> bool:
        """Run a pending sync immediately instead of waiting out the window."""
        if not self.cancel():
            return False
        self._run()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A schedule() or cancel() raced with this timer waking up
            if generation != self._generation:
                return
            self._timer = None
        self._run()

    def _run(self) -> None:
        try:
            self.run_count += 1
            self.last_run = datetime.now()
            self.callback()
        except Exception as e:
            self.logger.exception(f"Scheduled sync failed: {e}")

    def start_periodic(self, interval_seconds: float) -> None:
        """Retry sync every interval_seconds regardless of local writes. 0 or less disables."""
        self.stop_periodic()
        if not interval_seconds or interval_seconds <= 0:
            return
        self._periodic_interval = float(interval_seconds)
        self.logger.info(f"Periodic sync every {interval_seconds} seconds")
        self._start_periodic_timer()

    def _start_periodic_timer(self) -> None:
        timer = Timer(self._periodic_interval, self._run_periodic)
        timer.daemon = True
        self._periodic = timer
        timer.start()

    def _run_periodic(self) -> None:
        self._run()
        if self._periodic_interval:
            self._start_periodic_timer()

    def stop_periodic(self) -> None:
        self._periodic_interval = None
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None

    def get_status(self) -> Dict[str, Any]:
        """Snapshot for the API."""
        return {
            "pending": self.pending,
            "debounce_ms": self.debounce_ms,
            "periodic_interval_seconds": self._periodic_interval,
            "run_count": self.run_count,
            "last_run": self.last_run,
        }

    def stop(self) -> None:
        """Stop all timers."""
        self.cancel()
        self.stop_periodic()
