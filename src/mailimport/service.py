"""
Long-running modes: resume a month until done, or only serve progress.
"""

from __future__ import annotations
import threading
from typing import Optional

from mailimport.config import Clients, Config
from mailimport.health import ProgressServer
from mailimport.logging import logger
from mailimport.models import ImportResult
from mailimport.pipeline.commands import get_progress, import_month
from mailimport.pipeline.importer import Notifier
from mailimport.scheduler import ResumeScheduler


def resume_until_done(
    cfg: Config,
    clients: Clients,
    month: int,
    year: int,
    *,
    notifier: Optional[Notifier] = None,
    serve_progress: bool = False,
    max_runs: Optional[int] = None,
) -> Optional[ImportResult]:
    """
    Invoke the import for (month, year) every SCHEDULER_INTERVAL seconds until
    it is no longer paused. Optionally exposes /progress while running.
    """
    scheduler = ResumeScheduler(
        job_func=lambda: import_month(cfg, clients, month, year, notifier),
        interval_seconds=cfg["SCHEDULER_INTERVAL"],
        max_runs=max_runs,
    )
    server = None
    if serve_progress:
        server = ProgressServer(
            port=cfg["PROGRESS_PORT"],
            progress_func=lambda: get_progress(clients),
            health_func=scheduler.get_health,
        )
        server.start()
    try:
        return scheduler.run()
    finally:
        if server:
            server.stop()


def serve_progress_forever(cfg: Config, clients: Clients) -> None:
    """Serve /progress and /health for an import driven by another process."""
    server = ProgressServer(port=cfg["PROGRESS_PORT"], progress_func=lambda: get_progress(clients))
    server.start()
    stop = threading.Event()
    try:
        stop.wait()
    except KeyboardInterrupt:
        logger.info("Progress server interrupted by user")
    finally:
        server.stop()
