"""
BrowserFlow - Test Artifact Management for Browser Testing

Manages immutable run directories, visual regression baselines and failure
bundles with ranked repair suggestions for an automated browser-testing
workflow.
"""

__version__ = "0.1.0"
__author__ = "BrowserFlow Team"

from .core.config import Config
from .core.exceptions import BrowserflowError
from .core.logging_config import setup_logging
from .execution.bundle import FailureBundleBuilder
from .execution.run_store import RunStore
from .visual.baselines import BaselineStore

__all__ = [
    "Config",
    "BrowserflowError",
    "setup_logging",
    "FailureBundleBuilder",
    "RunStore",
    "BaselineStore",
]
