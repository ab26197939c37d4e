from __future__ import annotations

import logging
import sys

"""Logging initialization with labeled prefixes.

Every console line starts with a label (INFO|WARN|ERROR|SUMMARY) so that the
batch output can be grepped and the SUMMARY line parsed by wrappers.
Standard library logging only; the per-run JSON Lines error log lives in
ticket_recon.logging.error_log.
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "log_error_block",
    "set_debug",
]

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25
LOGGER_NAME = "ticket_recon"

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """Formatter that prefixes each message with a short level label."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        return f"{level_label} {record.getMessage()}"


def setup_logging() -> logging.Logger:
    """Configure the application logger (idempotent).

    The handler writes to stdout so that CLI output and log lines share one
    stream. Module loggers (``ticket_recon.*``) propagate into it.

    Returns:
        Configured logger instance for the application
    """
    global _logger

    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    # Prevent propagation to root logger to avoid duplicate output
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured application logger, configuring it on first use."""
    if _logger is None:
        return setup_logging()
    return _logger


def set_debug(enabled: bool = True) -> None:
    get_logger().setLevel(logging.DEBUG if enabled else logging.INFO)


def log_summary(message: str) -> None:
    """Log a message at SUMMARY level."""
    get_logger().log(SUMMARY_LEVEL, message)


def log_error_block(title: str, detail: str, hint: str | None = None) -> None:
    """Emit a labeled multi-line error block with an optional remediation hint.

    Example output::

        ERROR ==== SQL Server connection failed ====
        ERROR Login timeout expired
        ERROR hint: check SQL_SERVER / SQL_USER in .env
    """
    logger = get_logger()
    logger.error(f"==== {title} ====")
    for line in str(detail).splitlines() or [""]:
        logger.error(line)
    if hint:
        logger.error(f"hint: {hint}")


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers[:]:
            _logger.removeHandler(handler)
    _logger = None
