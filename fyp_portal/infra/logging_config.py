"""
Logging configuration module.

One package logger ("fyp_portal") with a console handler and, optionally,
a per-day log file. Core modules log through it with "[Component]" prefixes;
API modules log through child loggers named after their module.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "fyp_portal"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Fixed for the life of the process; only the date part of the filename changes
_PROCESS_START_TIME: Optional[str] = None


def _today() -> str:
    return datetime.now().strftime("%Y%m%d")


def _process_start_time() -> str:
    global _PROCESS_START_TIME
    if _PROCESS_START_TIME is None:
        _PROCESS_START_TIME = datetime.now().strftime("%H%M%S")
    return _PROCESS_START_TIME


class DailyRotatingFileHandler(logging.FileHandler):
    """
    File handler that starts a new file when the calendar date changes.

    Files are named logs/fyp_portal_YYYYMMDD_<START_HHMMSS>.log, so every
    file written by one process shares the same start-time suffix.
    """

    def __init__(self, log_dir: str = "logs", encoding: str = "utf-8"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._start_hhmmss = _process_start_time()
        self._current_date = _today()

        super().__init__(self._path_for(self._current_date), mode="a", encoding=encoding)

    def _path_for(self, date_str: str) -> str:
        return str(self.log_dir / f"{LOGGER_NAME}_{date_str}_{self._start_hhmmss}.log")

    def _roll_over_if_new_day(self) -> None:
        today = _today()
        if today == self._current_date:
            return

        self.close()
        self._current_date = today
        self.baseFilename = os.path.abspath(self._path_for(today))
        self.stream = self._open()

    def emit(self, record: logging.LogRecord) -> None:
        self._roll_over_if_new_day()
        super().emit(record)


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = "logs") -> logging.Logger:
    """
    Configure the package logger and return it.

    Calling it again replaces the previous handlers.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        log_dir: Directory for daily log files; None logs to console only

    Returns:
        logging.Logger: The configured package logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.StreamHandler()]
    if log_dir:
        handlers.append(DailyRotatingFileHandler(log_dir=log_dir))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    target = handlers[-1].baseFilename if log_dir else "console only"
    logger.info(f"Logging started - level: {log_level}, output: {target}")
    return logger
