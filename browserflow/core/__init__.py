"""Core components for BrowserFlow."""

from .config import Config
from .exceptions import (
    BrowserflowError,
    BundleNotFoundError,
    FileOperationError,
    ValidationError,
)
from .logging_config import setup_logging, get_logger, log_performance

__all__ = [
    "Config",
    "BrowserflowError",
    "BundleNotFoundError",
    "FileOperationError",
    "ValidationError",
    "setup_logging",
    "get_logger",
    "log_performance",
]
