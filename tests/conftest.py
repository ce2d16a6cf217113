"""
Pytest configuration and shared fixtures for BrowserFlow tests.

Provides temporary project configurations, run directories and image
helpers for all test modules.
"""

import tempfile
from pathlib import Path

import pytest
from PIL import Image

from browserflow.analysis.models import FailureContext, TestFailure, Viewport
from browserflow.core.config import Config
from browserflow.execution.run_store import RunStore


def write_image(path: Path, color, size=(10, 10), mode="RGB") -> Path:
    """Write a solid-colour PNG and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path, format="PNG")
    return path


@pytest.fixture
def temp_project():
    """Create a temporary project root."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config(temp_project):
    """Create a configuration rooted in a temporary project."""
    config = Config()
    config.project_root = temp_project
    config.artifact_namespace = ".browserflow"
    config.diff_threshold = 0.1
    config.generate_diffs = True
    config.accepted_by = "tester"
    return config


@pytest.fixture
def run_store(config):
    """Create a run store for the temporary project."""
    return RunStore(config)


@pytest.fixture
def raw_artifacts_dir(temp_project):
    """Create an empty raw artifacts directory as left by the test executor."""
    raw_dir = temp_project / "test-results"
    raw_dir.mkdir()
    return raw_dir


@pytest.fixture
def sample_failure():
    """Create a sample timeout failure."""
    return TestFailure(
        spec_name="checkout",
        step_id="step-3",
        action="click",
        message="TimeoutError: locator.click: Timeout 30000ms exceeded.",
        context=FailureContext(
            url="https://shop.example.com/cart",
            viewport=Viewport(width=1280, height=720),
            browser="chromium",
        ),
    )


@pytest.fixture
def make_image():
    """Provide the solid-colour PNG writer."""
    return write_image
