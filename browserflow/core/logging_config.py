"""
Logging configuration for BrowserFlow.

Records carry the spec, run and screenshot they concern as top-level context
fields. CI gets one JSON object per line on stdout; local runs get readable
text on stdout plus a rotating file under the artifacts namespace.
"""

import functools
import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone

from .config import Config
from .fileio import iso_timestamp

CONTEXT_ATTRIBUTES = ["spec_name", "run_id", "screenshot", "duration", "status"]

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _record_context(record: logging.LogRecord) -> dict:
    return {attr: getattr(record, attr) for attr in CONTEXT_ATTRIBUTES if hasattr(record, attr)}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": iso_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "session_id": self.session_id,
            "message": record.getMessage(),
        }
        log_entry.update(_record_context(record))

        if getattr(record, "metadata", None) is not None:
            log_entry["metadata"] = record.metadata

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for local runs."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        parts = [f"[{timestamp}] {record.levelname:8} {record.name:20} | {record.getMessage()}"]

        # spec/run/screenshot reads like the artifact path it refers to
        location = "/".join(
            str(getattr(record, attr))
            for attr in ("spec_name", "run_id", "screenshot")
            if getattr(record, attr, None)
        )
        if location:
            parts.append(f"[{location}]")
        parts.append(f"(session: {self.session_id[:8]})")

        metadata = getattr(record, "metadata", None)
        if metadata:
            parts.append("| " + " | ".join(f"{k}={v}" for k, v in metadata.items()))

        message = " ".join(parts)
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logging(config: Config, session_id: str) -> logging.Logger:
    """
    Configure the root logger from ``config``.

    Args:
        config: Configuration object with logging settings
        session_id: Identifier of this invocation for log correlation

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # "WARN" is accepted in config but logging only knows WARNING
    log_level = getattr(logging, "WARNING" if config.log_level == "WARN" else config.log_level)
    root_logger.setLevel(log_level)

    if config.log_format == "json":
        formatter = StructuredFormatter(session_id)
    else:
        formatter = TextFormatter(session_id)

    handlers = [logging.StreamHandler(sys.stdout)]
    if not config.is_ci_mode:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.get_log_file_path(),
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    logging.getLogger("browserflow.logging").debug(
        "Logging configured",
        extra={
            "metadata": {
                "log_level": config.log_level,
                "log_format": config.log_format,
                "artifacts_root": config.artifacts_root,
                "ci_mode": config.is_ci_mode,
            }
        },
    )

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges bound context into every record."""

    def process(self, msg, kwargs):
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        kwargs["extra"].update(self.extra)
        return msg, kwargs


def get_logger(name: str, **context) -> logging.Logger:
    """
    Get a logger, bound to ``context`` when any is given.

    ``get_logger(__name__, spec_name="checkout")`` tags every record with the
    spec so the formatters can render it.
    """
    logger = logging.getLogger(name)
    if context:
        return ContextAdapter(logger, context)
    return logger


def log_performance(operation_name: str):
    """
    Decorator logging how long an operation took and whether it raised.

    Args:
        operation_name: Name used in the log message
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(f"{func.__module__}.{func.__name__}")
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{operation_name} failed",
                    extra={
                        "metadata": {
                            "operation": operation_name,
                            "duration": time.time() - start_time,
                            "error": str(e),
                        }
                    },
                )
                raise

            logger.info(
                f"{operation_name} completed",
                extra={
                    "metadata": {
                        "operation": operation_name,
                        "duration": time.time() - start_time,
                    }
                },
            )
            return result

        return wrapper

    return decorator
