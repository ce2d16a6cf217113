"""
Visual regression components for BrowserFlow.

This module provides the pixel-level image comparator and the baseline store
with its accept workflow and hash-chained acceptance records.
"""

from .baselines import BaselineStore, accept_baselines, get_baseline_status
from .comparator import ImageComparator, compare_images
from .models import (
    AcceptanceRecord,
    AcceptResult,
    BaselineInfo,
    BaselineStatus,
    BaselineStatusKind,
    ComparisonResult,
    Screenshot,
)

__all__ = [
    "BaselineStore",
    "accept_baselines",
    "get_baseline_status",
    "ImageComparator",
    "compare_images",
    "AcceptanceRecord",
    "AcceptResult",
    "BaselineInfo",
    "BaselineStatus",
    "BaselineStatusKind",
    "ComparisonResult",
    "Screenshot",
]
