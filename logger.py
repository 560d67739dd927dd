"""
Logging configuration for the KYC Graph Review service.

Every module obtains its logger through get_logger(__name__). Records carry
the id of the review run being processed (``%(run_id)s``, "-" outside a
run), so interleaved concurrent runs can be told apart in one stream.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from config import get_config


_current_run_id: ContextVar[str] = ContextVar("kyc_run_id", default="-")

# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_initialized: bool = False


class RunContextFilter(logging.Filter):
    """Stamp each record with the active run id."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = _current_run_id.get()
        return True


_run_filter = RunContextFilter()


def current_run_id() -> str:
    return _current_run_id.get()


@contextmanager
def bind_run_id(run_id: str):
    """Tag every record logged inside the block with run_id."""
    token = _current_run_id.set(run_id)
    try:
        yield
    finally:
        _current_run_id.reset(token)


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    stream: Optional[object] = None,
    log_file: Optional[str] = None,
):
    """
    Initialize the logging system.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string; may use %(run_id)s
        stream: Output stream (defaults to sys.stderr)
        log_file: Also append to this file (defaults to Config.log_file)
    """
    global _initialized

    config = get_config()

    log_level = level or config.log_level
    log_format = format_string or config.log_format
    output_stream = stream or sys.stderr
    log_path = log_file or config.log_file

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Replace handlers so repeated setup does not duplicate output
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = [logging.StreamHandler(output_stream)]
    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        # Third-party records never pass through get_logger()
        handler.addFilter(_run_filter)
        root_logger.addHandler(handler)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger that stamps records with the current run id
    """
    global _initialized, _loggers

    if not _initialized:
        setup_logging()

    if name not in _loggers:
        logger = logging.getLogger(name)
        logger.addFilter(_run_filter)
        _loggers[name] = logger

    return _loggers[name]
