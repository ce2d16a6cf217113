"""
Run storage and failure bundles for BrowserFlow.

This module provides immutable run directories with a latest pointer and the
failure bundle builder that turns raw executor artifacts into a durable record.
"""

from .bundle import (
    FailureBundleBuilder,
    extract_trace_logs,
    generate_failure_bundle,
    load_failure_bundle,
)
from .models import RunPaths, is_run_id
from .run_store import RunStore, create_run_id, validate_spec_name

__all__ = [
    "FailureBundleBuilder",
    "extract_trace_logs",
    "generate_failure_bundle",
    "load_failure_bundle",
    "RunPaths",
    "is_run_id",
    "RunStore",
    "create_run_id",
    "validate_spec_name",
]
