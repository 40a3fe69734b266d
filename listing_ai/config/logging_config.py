# listing_ai/config/logging_config.py

"""Logging for listing_ai sessions.

Each launch writes one file, ``logs/run_<YYYYMMDD_HHMMSS>.log``. Every
record is tagged with the id of the pipeline run that emitted it
(``run=-`` outside a run), so lines from a superseded run and from the
run that replaced it can be told apart in the same file.

The orchestrator calls :func:`bind_run` at the start of each stage
task. Tasks copy the context they are created in, so the binding stays
local to that run's task.
"""

import logging
import sys
from collections.abc import Mapping
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path

from listing_ai.config.settings import Settings

_run_id: ContextVar[int | None] = ContextVar("listing_ai_run_id", default=None)

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | run=%(run_id)s | %(name)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s | run=%(run_id)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def bind_run(run_id: int) -> None:
    """Tag records logged from the current task with *run_id*."""
    _run_id.set(run_id)


def current_run_id() -> int | None:
    return _run_id.get()


class RunIdFilter(logging.Filter):
    """Add ``record.run_id`` from the active run binding."""

    def filter(self, record: logging.LogRecord) -> bool:
        run_id = _run_id.get()
        record.run_id = "-" if run_id is None else str(run_id)
        return True


def setup_logging(levels: Mapping[str, str] | None = None) -> Path:
    """Attach the run-file and stderr handlers to the ``listing_ai`` logger.

    *levels* maps child logger names to level names and defaults to
    ``Settings.LOGGER_LEVELS``. Levels are reapplied on every call; the
    handlers are only created once, and later calls return the file the
    first call opened.
    """
    root_logger = logging.getLogger("listing_ai")
    root_logger.setLevel(logging.DEBUG)
    for name, level in (levels or Settings.LOGGER_LEVELS).items():
        logging.getLogger(name).setLevel(level.upper())

    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)

    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    run_filter = RunIdFilter()

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )
    file_handler.addFilter(run_filter)

    # Warnings (no-consensus, failures) also surface on the terminal
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    console_handler.addFilter(run_filter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.info("Logging to %s", log_file)
    return log_file
