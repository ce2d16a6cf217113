"""
Data models for run directories.

Defines run id helpers and the path layout of a single run.
"""

import re
from dataclasses import dataclass
from pathlib import Path

RUN_ID_PATTERN = re.compile(r"^run-(\d{14})-([0-9a-f]{6})$")
RUN_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
LATEST_POINTER_NAME = "latest"
FAILURE_BUNDLE_NAME = "failure.json"
FAILURE_SCREENSHOT_NAME = "failure.png"


def is_run_id(name: str) -> bool:
    """Check whether ``name`` is a well-formed run id."""
    return RUN_ID_PATTERN.match(name) is not None


@dataclass(frozen=True)
class RunPaths:
    """Every slot of a run directory."""

    spec_name: str
    run_id: str
    run_dir: Path

    @property
    def artifacts_dir(self) -> Path:
        return self.run_dir / "artifacts"

    @property
    def screenshots_dir(self) -> Path:
        return self.artifacts_dir / "screenshots"

    @property
    def logs_dir(self) -> Path:
        return self.artifacts_dir / "logs"

    @property
    def diff_dir(self) -> Path:
        return self.artifacts_dir / "diff"

    @property
    def trace_path(self) -> Path:
        return self.artifacts_dir / "trace.zip"

    @property
    def video_path(self) -> Path:
        return self.artifacts_dir / "video.webm"

    @property
    def console_log_path(self) -> Path:
        return self.logs_dir / "console.json"

    @property
    def network_log_path(self) -> Path:
        return self.logs_dir / "network.json"

    @property
    def failure_screenshot_path(self) -> Path:
        return self.screenshots_dir / FAILURE_SCREENSHOT_NAME

    @property
    def failure_path(self) -> Path:
        return self.run_dir / FAILURE_BUNDLE_NAME

    def screenshot_path(self, name: str) -> Path:
        """Path of a named screenshot in this run."""
        return self.screenshots_dir / f"{name}.png"

    @classmethod
    def from_run_dir(cls, run_dir: Path) -> "RunPaths":
        run_dir = Path(run_dir)
        return cls(spec_name=run_dir.parent.name, run_id=run_dir.name, run_dir=run_dir)
