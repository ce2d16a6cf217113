"""
Data models for visual baselines and image comparison.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict


class BaselineStatusKind(Enum):
    """Comparison status of a baseline against the latest run."""

    MATCH = "match"
    DIFF = "diff"
    MISSING = "missing"


class ComparisonResult(BaseModel):
    """Outcome of comparing two images."""

    model_config = ConfigDict(extra="forbid")

    match: bool = Field(..., description="True when no pixel exceeds the threshold")
    diff_percent: float = Field(
        ..., ge=0.0, le=100.0, description="Share of mismatched pixels in percent"
    )
    diff_path: Optional[str] = Field(None, description="Path of the written diff image")


class AcceptanceRecord(BaseModel):
    """Metadata written next to a baseline each time it is accepted."""

    model_config = ConfigDict(extra="forbid")

    accepted_at: str = Field(..., description="ISO-8601 UTC acceptance time")
    accepted_by: str = Field(..., description="Identity of the accepting user")
    run_id: str = Field(..., description="Run the screenshot was taken from")
    previous_hash: Optional[str] = Field(
        ..., description="Hash of the replaced baseline, null for the first acceptance"
    )
    current_hash: str = Field(..., description="Hash of the accepted baseline")


class Screenshot(BaseModel):
    """A screenshot captured in a run."""

    model_config = ConfigDict(extra="forbid")

    name: str
    path: str


class BaselineInfo(BaseModel):
    """A stored baseline and, when known, its comparison status."""

    model_config = ConfigDict(extra="forbid")

    name: str
    path: str
    status: BaselineStatusKind = BaselineStatusKind.MATCH
    diff_percent: Optional[float] = None
    diff_path: Optional[str] = None
    acceptance: Optional[AcceptanceRecord] = None


class BaselineStatus(BaseModel):
    """Baselines of a spec cross-referenced against its latest run."""

    model_config = ConfigDict(extra="forbid")

    spec_name: str
    run_dir: Optional[str] = Field(None, description="Run the actuals were taken from")
    baselines: List[BaselineInfo] = Field(default_factory=list)
    new_screenshots: List[str] = Field(
        default_factory=list, description="Actual screenshots without a baseline"
    )


class AcceptResult(BaseModel):
    """Outcome of an accept-baselines batch."""

    model_config = ConfigDict(extra="forbid")

    accepted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(
        default_factory=list, description="One message per item that could not be accepted"
    )
    run_id: Optional[str] = None
