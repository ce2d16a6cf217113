"""
Configuration management for BrowserFlow.

Handles environment variables, defaults, YAML project configuration and
validation for the run, baseline and failure-bundle components.
"""

import logging
import os
from typing import Optional, Dict, Any
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACT_NAMESPACE = ".browserflow"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARN", "ERROR"]


@dataclass
class Config:
    """Configuration class for BrowserFlow with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")

    # Artifact layout
    project_root: Path = field(default_factory=lambda: Path.cwd())
    artifact_namespace: str = field(default=DEFAULT_ARTIFACT_NAMESPACE)

    # Visual comparison
    diff_threshold: float = field(default=0.1)
    generate_diffs: bool = field(default=True)

    # Identity recorded in baseline acceptance records
    accepted_by: Optional[str] = field(default=None)

    def __post_init__(self):
        """Apply environment overrides and normalise values."""
        ci_env = os.getenv("CI", "").lower() == "true"
        if ci_env and self.ci_mode is False:
            self.ci_mode = True

        root_env = os.getenv("BROWSERFLOW_PROJECT_ROOT")
        if root_env:
            self.project_root = Path(root_env)
        self.project_root = Path(self.project_root)

        namespace_env = os.getenv("BROWSERFLOW_ARTIFACT_NAMESPACE")
        if namespace_env:
            self.artifact_namespace = namespace_env

        log_env = os.getenv("BROWSERFLOW_LOG_LEVEL")
        if log_env:
            self.log_level = log_env
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            self.log_level = "INFO"
        else:
            self.log_level = self.log_level.upper()

        # JSON logs in CI unless explicitly set otherwise
        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        threshold_env = os.getenv("BROWSERFLOW_DIFF_THRESHOLD")
        if threshold_env is not None:
            try:
                self.diff_threshold = float(threshold_env)
            except ValueError:
                logger.warning(
                    f"Ignoring invalid BROWSERFLOW_DIFF_THRESHOLD: {threshold_env!r}"
                )

        if not self.accepted_by:
            self.accepted_by = (
                os.getenv("BROWSERFLOW_USER") or os.getenv("USER") or "unknown"
            )

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def artifacts_root(self) -> Path:
        """Root of all BrowserFlow artifacts for the project."""
        return self.project_root / self.artifact_namespace

    @property
    def runs_dir(self) -> Path:
        return self.artifacts_root / "runs"

    @property
    def baselines_dir(self) -> Path:
        return self.artifacts_root / "baselines"

    @property
    def logs_dir(self) -> Path:
        return self.artifacts_root / "logs"

    def get_log_file_path(self) -> Path:
        """Get the main log file path, creating its directory."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return self.logs_dir / "browserflow.log"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "project_root": str(self.project_root),
            "artifact_namespace": self.artifact_namespace,
            "artifacts_root": str(self.artifacts_root),
            "diff_threshold": self.diff_threshold,
            "generate_diffs": self.generate_diffs,
            "accepted_by": self.accepted_by,
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        ci = os.getenv("CI", "").lower() == "true"
        return cls(
            ci_mode=ci,
            log_level=os.getenv("BROWSERFLOW_LOG_LEVEL", "INFO").upper(),
            log_format="json" if ci else "text",
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """
        Create configuration from a YAML project file.

        Top-level keys matching configuration fields are applied; environment
        overrides still take precedence. A relative ``project_root`` is
        resolved against the file's directory.

        Raises:
            ValidationError: If the file cannot be read or is not a mapping
        """
        from .exceptions import ValidationError

        config_path = Path(config_path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(
                f"Could not load config file {config_path}: {e}",
                validation_type="config",
            ) from e

        if not isinstance(data, dict):
            raise ValidationError(
                f"Config file {config_path} must contain a mapping",
                validation_type="config",
            )

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}' in {config_path}")
                continue
            kwargs[key] = value

        if "project_root" in kwargs:
            root = Path(kwargs["project_root"])
            if not root.is_absolute():
                root = config_path.parent / root
            kwargs["project_root"] = root
        else:
            kwargs["project_root"] = config_path.parent

        return cls(**kwargs)

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.log_format not in ("text", "json"):
            errors.append(f"Invalid log format: {self.log_format}. Must be 'text' or 'json'")

        if not isinstance(self.diff_threshold, (int, float)) or not (
            0.0 <= self.diff_threshold <= 1.0
        ):
            errors.append(
                f"Invalid diff threshold: {self.diff_threshold}. Must be between 0 and 1"
            )

        namespace = Path(self.artifact_namespace)
        if not self.artifact_namespace or namespace.is_absolute() or ".." in namespace.parts:
            errors.append(
                f"Invalid artifact namespace: {self.artifact_namespace!r}. "
                "Must be a relative path inside the project"
            )

        if not self.project_root.exists():
            errors.append(f"Project root does not exist: {self.project_root}")

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
