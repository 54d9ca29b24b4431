# src/config/logging_config.py

"""Per-run logging for price_monitor.

Every launch writes ``logs/run_<run id>.log``, where the run id is the
launch timestamp. Each record in the file carries that run id and the
CLI command that started the run, so lines copied out of several logs
can still be told apart. Old run logs beyond ``LOG_RETENTION`` are
removed at startup.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

ROOT_LOGGER_NAME = "price_monitor"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | run=%(run_id)s cmd=%(command)s | "
    "%(name)s | %(threadName)s | %(module)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"
_VERBOSE_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunContextFilter(logging.Filter):
    """Stamp the run id and command onto every record."""

    def __init__(self, run_id: str, command: str) -> None:
        super().__init__()
        self.run_id = run_id
        self.command = command

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        record.command = self.command
        return True


def _prune_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete the oldest run logs so at most *keep* remain."""
    if keep <= 0:
        return
    logs = sorted(logs_dir.glob("run_*.log"))
    for stale in logs[:-keep]:
        try:
            stale.unlink()
        except OSError:
            # A log still held open elsewhere is left for next time
            continue


def setup_logging(verbose: bool = False, command: str = "dashboard") -> Path:
    """Attach the per-run file and console handlers.

    Args:
        verbose: Show INFO on the console instead of WARNING only.
        command: Name of the CLI command, recorded on every file line.

    Returns:
        Path of this run's log file.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{run_id}.log"

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)
    if root_logger.handlers:
        return log_file

    context = RunContextFilter(run_id, command)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(context)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.addFilter(context)
    console_handler.setFormatter(
        logging.Formatter(
            _VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT,
            datefmt=_DATE_FORMAT,
        )
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    _prune_old_logs(logs_dir, Settings.LOG_RETENTION)
    root_logger.info(
        "Logging initialised for run %s (%s), log file: %s",
        run_id,
        command,
        log_file,
    )
    return log_file
