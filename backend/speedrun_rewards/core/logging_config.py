"""
Logging configuration and utilities.
"""

import logging
import logging.handlers
import sys
import json
from typing import Any, Dict, Optional
from pathlib import Path
from datetime import datetime, timezone

from .config import LoggingConfig, get_config


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Ledger context attached through LoggerAdapter
        for key in ("batch_id", "recipient", "error_code", "request_id"):
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ColorFormatter(logging.Formatter):
    """Colored console formatter."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",   # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",   # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.COLORS.get(record.levelname, self.RESET)
        message = super().format(record)
        return f"{color}{message}{self.RESET}"


def setup_logging(
    config: Optional[LoggingConfig] = None,
    log_file: Optional[str] = None,
    json_format: Optional[bool] = None
) -> None:
    """
    Setup logging configuration.

    Args:
        config: Logging configuration
        log_file: Optional log file path
        json_format: Use JSON format for logs (defaults to the config value)
    """
    if config is None:
        config = get_config().logging
    if json_format is None:
        json_format = config.json_format

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt=config.format,
            datefmt=config.date_format
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(config.level.value)
    if json_format:
        console_handler.setFormatter(formatter)
    else:
        console_handler.setFormatter(ColorFormatter(
            fmt=config.format,
            datefmt=config.date_format
        ))

    handlers = [console_handler]

    file_path = log_file or config.file_path
    if file_path:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                filename=file_path,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count,
                encoding="utf-8"
            )
            file_handler.setLevel(config.level.value)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            logging.warning(f"Failed to setup file logging: {e}")

    logging.basicConfig(
        level=config.level.value,
        format=config.format,
        datefmt=config.date_format,
        handlers=handlers,
        force=True
    )

    # Set levels for third-party libraries
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    logging.info(f"Logging configured with level: {config.level.value}")


def get_logger(name: str, extra: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Get a logger with extra context.

    Args:
        name: Logger name
        extra: Extra context to include in logs

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if extra:
        class ContextFilter(logging.Filter):
            def filter(self, record: logging.LogRecord) -> bool:
                for key, value in extra.items():
                    setattr(record, key, value)
                return True

        if not any(isinstance(f, ContextFilter) for f in logger.filters):
            logger.addFilter(ContextFilter())

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter with additional context."""

    def __init__(self, logger: logging.Logger, extra: Dict[str, Any]):
        super().__init__(logger, extra)

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        """Process log message with extra context."""
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        kwargs["extra"].update(self.extra)
        return msg, kwargs


def get_batch_logger(logger: logging.Logger, batch_id: str) -> LoggerAdapter:
    """Get a logger adapter carrying a batch identifier."""
    return LoggerAdapter(logger, {"batch_id": batch_id})
