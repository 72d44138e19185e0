"""
Periodic task runner: one daemon thread per task, body never overlaps itself.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs body once on start() and then every interval_sec.

    stop() cancels future ticks and waits for an in-flight body to finish;
    it never interrupts one. run_now() shares the same lock, so a manual
    run and a scheduled tick cannot execute concurrently.
    """

    def __init__(self, name: str, interval_sec: float, body: Callable[[], object]) -> None:
        if interval_sec <= 0:
            raise ValueError(f"{name}: interval must be positive, got {interval_sec}")
        self.name = name
        self.interval_sec = interval_sec
        self._body = body
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0
        self.failures = 0
        self.last_run_at: float | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """False if already running."""
        if self.running:
            logger.info("%s already running", self.name)
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (every %.0fs)", self.name, self.interval_sec)
        return True

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("%s stopped", self.name)

    def run_now(self):
        """Run the body synchronously in the caller's thread. Returns the body's result."""
        with self._run_lock:
            self.last_run_at = time.time()
            self.runs += 1
            return self._body()

    def _loop(self) -> None:
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                self.run_now()
            except Exception:
                self.failures += 1
                logger.exception("%s tick failed", self.name)
            elapsed = time.monotonic() - started
            # wait() returns early when stop() is called
            self._stop.wait(max(0.0, self.interval_sec - elapsed))
