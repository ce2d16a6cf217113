"""
Rule-based failure classification and repair suggestions.

Classifies raw error messages into a closed set of error types and maps each
type to a fixed, ordered list of repair suggestions. Everything here is pure:
the same input always yields the same output.
"""

import re
from typing import Dict, Any, List, Optional, Tuple

from ..core.exceptions import ValidationError
from ..core.logging_config import get_logger
from .models import (
    ErrorType,
    FailureBundle,
    RepairPlan,
    RepairSuggestion,
    SuggestionType,
    TestFailure,
)

logger = get_logger(__name__)

AUTO_APPLY_CONFIDENCE = 0.9

LOCATOR_PATTERN = re.compile(r"locator resolved to (\d+|n) elements", re.IGNORECASE)
TIMEOUT_MARKERS = ("timeout",)  # also matches TimeoutError
ASSERTION_MARKERS = ("expect", "expected:", "received:", "assertionerror", "assertion error")
SCREENSHOT_MARKERS = ("screenshot comparison", "visual comparison", "tomatchsnapshot")

# (type, description, confidence, patch); "{action}" is filled from the failure
SuggestionTemplate = Tuple[SuggestionType, str, float, Optional[Dict[str, Any]]]

SUGGESTION_TABLE: Dict[ErrorType, Tuple[SuggestionTemplate, ...]] = {
    ErrorType.LOCATOR_NOT_FOUND: (
        (
            SuggestionType.UPDATE_LOCATOR,
            'The locator for the "{action}" action could not find the element. '
            "Update the locator with a more specific selector or try a fallback "
            "locator strategy.",
            0.7,
            {"use_fallback": True},
        ),
        (
            SuggestionType.INVESTIGATE,
            "Check if the page structure has changed or if the element loads dynamically.",
            0.5,
            None,
        ),
    ),
    ErrorType.TIMEOUT: (
        (
            SuggestionType.INCREASE_TIMEOUT,
            "The operation timed out. Double the timeout or check whether the "
            "element or action is slow to respond.",
            0.8,
            {"timeout_multiplier": 2},
        ),
        (
            SuggestionType.INVESTIGATE,
            "Check for network issues or slow page loads that might be causing the timeout.",
            0.4,
            None,
        ),
    ),
    ErrorType.ASSERTION_FAILED: (
        (
            SuggestionType.FIX_ASSERTION,
            "The assertion failed. Review the expected vs actual values and update "
            "the expected value or fix the application behavior.",
            0.5,
            None,
        ),
        (
            SuggestionType.INVESTIGATE,
            "Verify the application behavior is correct.",
            0.6,
            None,
        ),
    ),
    ErrorType.SCREENSHOT_DIFF: (
        (
            SuggestionType.UPDATE_BASELINE,
            "Visual differences detected. Review the diff images and accept the new "
            "screenshot as baseline if the change is intentional.",
            0.6,
            None,
        ),
        (
            SuggestionType.ADD_MASK,
            "Add a mask for the dynamic content area.",
            0.7,
            None,
        ),
        (
            SuggestionType.INVESTIGATE,
            "Check if the visual differences indicate a regression or an expected UI change.",
            0.5,
            None,
        ),
    ),
    ErrorType.UNKNOWN: (
        (
            SuggestionType.INVESTIGATE,
            "Unknown error type. Review the error message and stack trace for more details.",
            0.3,
            None,
        ),
    ),
}


REPAIR_FLOW_TYPES = {SuggestionType.UPDATE_LOCATOR: SuggestionType.USE_FALLBACK}


def classify_error(message: str) -> ErrorType:
    """
    Classify an error message. First matching rule wins:
    locator count, timeout, assertion vocabulary, screenshot vocabulary.
    """
    msg = (message or "").lower()

    if LOCATOR_PATTERN.search(msg):
        return ErrorType.LOCATOR_NOT_FOUND

    if any(marker in msg for marker in TIMEOUT_MARKERS):
        return ErrorType.TIMEOUT

    if any(marker in msg for marker in ASSERTION_MARKERS):
        return ErrorType.ASSERTION_FAILED

    if any(marker in msg for marker in SCREENSHOT_MARKERS):
        return ErrorType.SCREENSHOT_DIFF

    return ErrorType.UNKNOWN


def suggestions_for(error_type: ErrorType, action: str = "") -> List[RepairSuggestion]:
    """Build the table suggestions for ``error_type`` in table order."""
    return [
        RepairSuggestion(
            type=suggestion_type,
            description=description.format(action=action or "failing"),
            confidence=confidence,
            patch=dict(patch) if patch else None,
        )
        for suggestion_type, description, confidence, patch in SUGGESTION_TABLE[error_type]
    ]


def generate_repair_suggestions(failure: TestFailure) -> List[RepairSuggestion]:
    """Classify a reported failure and return its repair suggestions."""
    error_type = classify_error(failure.message)
    suggestions = suggestions_for(error_type, failure.action)

    logger.debug(
        f"Classified failure in {failure.spec_name}/{failure.step_id} as {error_type.value}",
        extra={
            "metadata": {
                "error_type": error_type.value,
                "suggestions": [s.type.value for s in suggestions],
            }
        },
    )
    return suggestions


def analyze_failure(bundle: FailureBundle) -> List[RepairSuggestion]:
    """
    Return repair suggestions for a stored failure bundle.

    The repair flow patches the stored locator in place, so a missing locator
    is offered as a switch to its fallback strategy.
    """
    return [
        s.model_copy(update={"type": REPAIR_FLOW_TYPES.get(s.type, s.type)})
        for s in suggestions_for(bundle.failure.error_type, bundle.failure.action)
    ]


def generate_repair_plan(suggestions: List[RepairSuggestion]) -> RepairPlan:
    """
    Rank suggestions into a repair plan.

    Ties keep their original order. The plan is auto-applicable only when the
    primary suggestion's confidence reaches ``AUTO_APPLY_CONFIDENCE``.

    Raises:
        ValidationError: If no suggestions are given
    """
    if not suggestions:
        raise ValidationError(
            "Cannot build a repair plan without suggestions",
            validation_type="repair_plan",
        )

    ranked = sorted(suggestions, key=lambda s: s.confidence, reverse=True)
    primary = ranked[0]
    auto_applicable = primary.confidence >= AUTO_APPLY_CONFIDENCE

    return RepairPlan(
        suggestions=ranked,
        primary_suggestion=primary,
        auto_applicable=auto_applicable,
        requires_confirmation=not auto_applicable,
    )
