# src/parapdfa/logger.py

import logging
import sys
from pathlib import Path
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Any, Union, Optional

# --- Custom Log Level for Progress ---
PROGRESS = 25
logging.addLevelName(PROGRESS, "PROGRESS")

def progress(self, msg, *args, **kwargs):
    if self.isEnabledFor(PROGRESS):
        self._log(PROGRESS, msg, args, **kwargs)

logging.Logger.progress = progress

# --- Custom Filters ---
class ExcludeLevelFilter(logging.Filter):
    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno != self.levelno


def verbosity_to_level(verbosity: int, debug: bool = False) -> int:
    """Maps the -v count to a logging level; debug mode always logs everything."""
    if debug or verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


# --- Main Configuration Function ---
def setup_logging(
    log_queue: Any,
    *,
    level: int = logging.WARNING,
    stream=None,
    file_path: Optional[Union[str, Path]] = None,
    file_level: Optional[int] = None,
) -> QueueListener:
    """
    Sets up the logging listener architecture.

    Args:
        log_queue: The process-safe queue that all workers will log to.
        level: The base logging level for console output.
        stream: Console stream, stderr by default.
        file_path: Path to the persistent log file.
        file_level: The logging level for the file.

    Returns:
        A QueueListener instance. You must call .start() on it.
    """
    handlers = []

    # Console handler
    ch = logging.StreamHandler(stream or sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    ch.addFilter(ExcludeLevelFilter(PROGRESS))
    handlers.append(ch)

    # File handler
    if file_path:
        fp = Path(file_path)
        fp.parent.mkdir(parents=True, exist_ok=True)
        # Use RotatingFileHandler so repeated runs don't grow the log forever
        fh = RotatingFileHandler(fp, maxBytes=5*1024*1024, backupCount=2, encoding="utf-8")
        fh.setLevel(file_level if file_level is not None else logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s | %(processName)-15s | %(levelname)-8s | %(message)s"))
        fh.addFilter(ExcludeLevelFilter(PROGRESS))
        handlers.append(fh)

    # The listener pulls from the process-safe queue and pushes to the configured handlers.
    listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    return listener

def configure_worker_logging(log_queue: Any):
    """
    Configures the logger for a worker process (and for the main process).
    This is called in the initializer of a multiprocessing.Pool.
    It removes all existing handlers and adds only a QueueHandler.
    """
    logger = logging.getLogger("parapdfa")
    logger.setLevel(logging.DEBUG)

    # Remove any handlers that may have been inherited from the parent process
    logger.handlers.clear()
    logger.propagate = False

    logger.addHandler(QueueHandler(log_queue))
