"""
Logging configuration using loguru.

One console sink for operators and an optional rotating file sink for
long-running resume services.
"""

from __future__ import annotations
import sys
from pathlib import Path
from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(
    log_level: str = "INFO",
    log_file: str | Path | None = None,
    rotation: str = "10 MB",
    retention: str = "14 days",
    console_level: str | None = None,
) -> None:
    """
    Configure loguru with console and optional file output.

    Args:
        log_level: Level for the file sink (and console when no file is set)
        log_file: Optional path to a log file. If None, only console logging.
        rotation: Log rotation size (e.g., "10 MB")
        retention: Log retention period (e.g., "14 days")
        console_level: Console level. Defaults to WARNING when a file sink is
            active, otherwise to log_level.
    """
    logger.remove()

    if console_level is None:
        console_level = "WARNING" if log_file else log_level

    logger.add(sys.stderr, format=_CONSOLE_FORMAT, level=console_level, colorize=True)

    if not log_file:
        return

    log_path = Path(log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=_FILE_FORMAT,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            encoding="utf-8",
            catch=True,
        )
        print(f"Logging to file: {log_path}", file=sys.stderr)
    except OSError as e:
        # read-only log directory: keep console logging
        print(f"WARNING: Failed to setup file logging to {log_path}: {e}", file=sys.stderr)
        print("Continuing with console logging only", file=sys.stderr)


__all__ = ["logger", "setup_logging"]
