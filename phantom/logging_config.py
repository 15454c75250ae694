# phantom/logging_config.py
# PhantomKeystroke Logging Configuration
# Console, rotating file and JSON output for the "phantom" logger tree

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_LOGGER = "phantom"

# Attributes every LogRecord carries; anything else was passed via extra=
_STANDARD_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "message",
    )
)


class PhantomFormatter(logging.Formatter):
    """
    Formatter for terminal and plain-text file logs.
    Colours the level name when writing to a TTY.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True, include_module: bool = True):
        self.use_colors = use_colors and sys.stdout.isatty()
        self.include_module = include_module

        if include_module:
            fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        else:
            fmt = "%(asctime)s | %(levelname)-8s | %(message)s"

        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        original = record.levelname
        color = self.COLORS.get(original, self.COLORS["RESET"])
        record.levelname = f"{color}{original}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    One object per line, extra= fields included.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    log_to_file: bool = True,
    log_to_console: bool = True,
    use_colors: bool = True,
    json_format: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Setup PhantomKeystroke logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files
        log_to_file: Enable file logging
        log_to_console: Enable console logging (stderr, stdout carries replay)
        use_colors: Enable colored console output
        json_format: Use JSON format for file logs
        max_file_size_mb: Max size of each log file in MB
        backup_count: Number of backup log files to keep

    Returns:
        Root logger configured for PhantomKeystroke
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(numeric_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(PhantomFormatter(use_colors=use_colors))
        root_logger.addHandler(console_handler)

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / "phantom.log",
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(PhantomFormatter(use_colors=False))

        root_logger.addHandler(file_handler)

        # Errors only
        error_handler = logging.handlers.RotatingFileHandler(
            log_path / "phantom_error.log",
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(PhantomFormatter(use_colors=False))
        root_logger.addHandler(error_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the phantom tree.

    Example:
        logger = get_logger("cli")
        logger.info("Session started")
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)


def log_opsec_event(logger: logging.Logger, region: str, reason: str, blocked: bool):
    """Log an OPSEC verdict that did not come back clean"""
    action = "BLOCKED" if blocked else "ADVISORY"
    logger.warning(f"OPSEC {action} | Persona: {region} | {reason}")
