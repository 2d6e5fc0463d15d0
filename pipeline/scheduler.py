"""
Pipeline Scheduler

Runs a task immediately and then at a fixed rate on a daemon thread.

- stop() sets a cancellation token; no new run starts after it returns
- stop() waits (bounded) for an in-flight run to finish
- an exception from one run is logged and never ends the schedule
- ticks missed while a run overran are skipped, not queued
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PipelineScheduler:
    """Fixed-rate ticker with a threading.Event cancellation token."""

    def __init__(
        self,
        task: Callable[[], Any],
        interval_seconds: float,
        name: str = "pipeline-scheduler",
        timer: Callable[[], float] = time.monotonic
    ):
        """
        Initialize scheduler.

        Args:
            task: Callable run on every tick
            interval_seconds: Time between tick starts
            name: Thread name
            timer: Monotonic clock (injected for tests)
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self.task = task
        self.interval_seconds = float(interval_seconds)
        self.name = name
        self.timer = timer

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self.tick_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> bool:
        """
        Start ticking. Returns False if already running.
        """
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                logger.warning(f"{self.name}: already running")
                return False

            self._stop_event = threading.Event()
            self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
            self._thread.start()

        logger.info(f"{self.name}: started with interval {self.interval_seconds:.1f}s")
        return True

    def stop(self, timeout: Optional[float] = 10.0) -> bool:
        """
        Cancel further runs and wait for the current one.

        Args:
            timeout: Maximum seconds to wait for an in-flight run (None = wait forever)

        Returns:
            True if the worker thread has exited
        """
        with self._lock:
            thread = self._thread
            self._stop_event.set()

        if thread is None:
            return True

        if thread is not threading.current_thread():
            thread.join(timeout=timeout)

        stopped = not thread.is_alive()
        if stopped:
            logger.info(f"{self.name}: stopped after {self.tick_count} runs")
        else:
            logger.warning(f"{self.name}: in-flight run still active after {timeout}s")
        return stopped

    def _run_once(self) -> None:
        self.tick_count += 1
        try:
            self.task()
        except Exception as e:
            self.error_count += 1
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error(f"{self.name}: scheduled run {self.tick_count} failed: {e}", exc_info=True)

    def _run_loop(self) -> None:
        stop_event = self._stop_event
        next_tick = self.timer()

        while not stop_event.is_set():
            self._run_once()

            next_tick += self.interval_seconds
            now = self.timer()
            if next_tick <= now:
                skipped = int((now - next_tick) // self.interval_seconds) + 1
                next_tick += skipped * self.interval_seconds
                logger.debug(f"{self.name}: run overran, skipping {skipped} tick(s)")

            if stop_event.wait(timeout=max(0.0, next_tick - now)):
                break
