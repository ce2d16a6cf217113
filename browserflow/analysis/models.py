"""
Data models for failure analysis and repair.

Defines Pydantic models for test failures, failure bundles, repair
suggestions and repair plans.
"""

from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator


class ErrorType(Enum):
    """Closed classification of a failure's root cause."""

    LOCATOR_NOT_FOUND = "locator_not_found"
    TIMEOUT = "timeout"
    ASSERTION_FAILED = "assertion_failed"
    SCREENSHOT_DIFF = "screenshot_diff"
    UNKNOWN = "unknown"


class SuggestionType(Enum):
    """Types of repairs that can be suggested."""

    UPDATE_LOCATOR = "update_locator"
    USE_FALLBACK = "use_fallback"
    INCREASE_TIMEOUT = "increase_timeout"
    UPDATE_BASELINE = "update_baseline"
    ADD_MASK = "add_mask"
    FIX_ASSERTION = "fix_assertion"
    INVESTIGATE = "investigate"


class ConfidenceLevel(Enum):
    """Confidence buckets for display."""

    HIGH = "high"  # 60-100% confidence
    MEDIUM = "medium"  # 40-59% confidence
    LOW = "low"  # 0-39% confidence

    @classmethod
    def from_score(cls, score: float) -> "ConfidenceLevel":
        if score >= 0.6:
            return cls.HIGH
        if score >= 0.4:
            return cls.MEDIUM
        return cls.LOW


class RepairSuggestion(BaseModel):
    """A suggested fix for a test failure."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: SuggestionType = Field(..., description="Kind of repair being suggested")
    description: str = Field(..., description="Human-readable description of the fix")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score")
    patch: Optional[Dict[str, Any]] = Field(
        None, description="Machine-readable change hint for repair tooling"
    )

    @property
    def confidence_level(self) -> ConfidenceLevel:
        return ConfidenceLevel.from_score(self.confidence)


class RepairPlan(BaseModel):
    """Suggestions ranked for an interactive or automatic repair."""

    model_config = ConfigDict(extra="forbid")

    suggestions: List[RepairSuggestion] = Field(
        ..., description="Suggestions sorted by descending confidence"
    )
    primary_suggestion: RepairSuggestion = Field(
        ..., description="Highest-confidence suggestion"
    )
    auto_applicable: bool = Field(
        ..., description="Whether the primary suggestion may be applied without review"
    )
    requires_confirmation: bool = Field(
        ..., description="Whether a human must confirm before applying"
    )


class Viewport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class FailureContext(BaseModel):
    """Browser context the failing step ran in."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., description="Page URL at the time of failure")
    viewport: Viewport = Field(..., description="Browser viewport size")
    browser: str = Field(..., description="Browser name (chromium, firefox, webkit)")


class TestFailure(BaseModel):
    """A failed step as reported by the test executor."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="forbid")

    spec_name: str = Field(..., description="Name of the spec that failed")
    step_id: str = Field(..., description="Identifier of the failing step")
    action: str = Field(..., description="Action the step performed (click, fill, ...)")
    message: str = Field(..., description="Raw error message")
    context: FailureContext = Field(..., description="Execution context")


class FailureDetails(BaseModel):
    model_config = ConfigDict(extra="forbid")

    step_id: str
    action: str
    error_message: str
    error_type: ErrorType


class DiffArtifacts(BaseModel):
    """Expected/actual/diff images copied for a screenshot failure."""

    model_config = ConfigDict(extra="forbid")

    baseline: Optional[str] = None
    actual: Optional[str] = None
    diff: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.baseline or self.actual or self.diff)


class BundleArtifacts(BaseModel):
    """Paths of artifacts copied into the bundle. Absent artifacts are omitted."""

    model_config = ConfigDict(extra="forbid")

    trace: Optional[str] = None
    video: Optional[str] = None
    screenshot: Optional[str] = None
    diff: Optional[DiffArtifacts] = None
    console_log: Optional[str] = None
    network_log: Optional[str] = None


class FailureBundle(BaseModel):
    """The self-contained record of one failed run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run the failure belongs to")
    spec_name: str = Field(..., description="Spec that failed")
    failed_at: str = Field(..., description="ISO-8601 UTC failure timestamp")
    failure: FailureDetails
    context: FailureContext
    artifacts: BundleArtifacts = Field(default_factory=BundleArtifacts)
    suggestions: Optional[List[RepairSuggestion]] = None

    @field_validator("run_id")
    @classmethod
    def validate_run_id(cls, v):
        if not v.strip():
            raise ValueError("run_id cannot be empty")
        return v

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted ``failure.json`` shape."""
        return self.model_dump(mode="json", exclude_none=True)
