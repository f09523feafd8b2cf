"""
Re-invokes a paused import until it reaches a terminal state.

Each invocation processes one batch; this scheduler is the "scheduled
re-invocation" that carries a large month to completion.
"""

from __future__ import annotations
import signal
import threading
import time
from typing import Callable, Optional

from mailimport.logging import logger
from mailimport.models import ImportResult, ImportState


class ResumeScheduler:
    """
    Runs `job_func` every `interval_seconds` until it returns a result that
    does not need resuming.

    A busy run-lock counts as "try again later", not as done. An ERROR result
    is a failed run and ends the loop. Exceptions are counted and retried on
    the next tick.
    """

    def __init__(
        self,
        job_func: Callable[[], ImportResult],
        interval_seconds: float = 60,
        max_runs: Optional[int] = None,
    ) -> None:
        """
        Args:
            job_func: One import invocation
            interval_seconds: Pause between invocations
            max_runs: Stop after this many invocations (None = until done)
        """
        self.job_func = job_func
        self.interval_seconds = interval_seconds
        self.max_runs = max_runs
        self.running = False
        self.shutdown_requested = False
        self.last_result: Optional[ImportResult] = None
        self.thread: Optional[threading.Thread] = None
        self._wake = threading.Event()
        self.stats = {
            "runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_run_time": None,
            "last_state": None,
            "last_error": None,
        }

        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, self._signal_handler)
            signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        logger.info(f"Received signal {signum}, finishing current batch and stopping...")
        self.shutdown_requested = True
        self._wake.set()

    def _run_once(self) -> bool:
        """Run one invocation; True when the job is finished."""
        self.stats["runs"] += 1
        self.stats["last_run_time"] = time.time()
        try:
            result = self.job_func()
        except Exception as e:
            self.stats["failed_runs"] += 1
            self.stats["last_error"] = str(e)
            logger.exception(f"Import invocation failed: {e}")
            return False

        self.last_result = result
        self.stats["last_state"] = result.state.value
        if result.busy:
            logger.info("Run-lock busy, retrying on next tick")
            return False
        if result.state == ImportState.ERROR:
            self.stats["failed_runs"] += 1
            self.stats["last_error"] = result.message
            logger.error(f"Import ended in error: {result.title}: {result.message}")
            return True
        self.stats["successful_runs"] += 1
        self.stats["last_error"] = None
        return not result.needs_resume

    def run(self) -> Optional[ImportResult]:
        """Loop in the calling thread until done, stopped or out of runs."""
        self.running = True
        try:
            while not self.shutdown_requested:
                if self._run_once():
                    logger.info(f"Import finished in state {self.stats['last_state']}")
                    break
                if self.max_runs is not None and self.stats["runs"] >= self.max_runs:
                    logger.warning(f"Stopping after {self.max_runs} invocations")
                    break
                self._wake.wait(self.interval_seconds)
        finally:
            self.running = False
        return self.last_result

    def start(self) -> None:
        """Run the loop in a background thread."""
        if self.running:
            logger.warning("Scheduler is already running")
            return
        self.shutdown_requested = False
        self._wake.clear()
        self.thread = threading.Thread(target=self.run, daemon=False)
        self.thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        self.shutdown_requested = True
        self._wake.set()
        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                logger.warning(f"Scheduler thread did not stop within {timeout}s")

    def wait(self) -> None:
        if self.thread:
            self.thread.join()

    def get_health(self) -> dict:
        is_healthy = self.stats["last_error"] is None
        if self.running and self.stats["last_run_time"]:
            if time.time() - self.stats["last_run_time"] > self.interval_seconds * 3:
                is_healthy = False
        return {
            "status": "healthy" if is_healthy else "unhealthy",
            "running": self.running,
            "stats": self.stats.copy(),
            "interval_seconds": self.interval_seconds,
        }
