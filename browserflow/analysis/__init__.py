"""
Failure analysis components for BrowserFlow.

Classifies failure messages and produces confidence-ranked repair
suggestions and plans.
"""

from .advisor import (
    AUTO_APPLY_CONFIDENCE,
    SUGGESTION_TABLE,
    analyze_failure,
    classify_error,
    generate_repair_plan,
    generate_repair_suggestions,
)
from .models import (
    BundleArtifacts,
    ConfidenceLevel,
    DiffArtifacts,
    ErrorType,
    FailureBundle,
    FailureContext,
    FailureDetails,
    RepairPlan,
    RepairSuggestion,
    SuggestionType,
    TestFailure,
    Viewport,
)

__all__ = [
    "AUTO_APPLY_CONFIDENCE",
    "SUGGESTION_TABLE",
    "analyze_failure",
    "classify_error",
    "generate_repair_plan",
    "generate_repair_suggestions",
    "BundleArtifacts",
    "ConfidenceLevel",
    "DiffArtifacts",
    "ErrorType",
    "FailureBundle",
    "FailureContext",
    "FailureDetails",
    "RepairPlan",
    "RepairSuggestion",
    "SuggestionType",
    "TestFailure",
    "Viewport",
]
