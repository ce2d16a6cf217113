"""
Unit tests for failure bundle generation and loading.

Tests artifact discovery, the stable bundle layout, trace log extraction and
bundle lookup across runs.
"""

import json
import zipfile
from unittest.mock import patch

import pytest

from browserflow.analysis.models import ErrorType, FailureBundle
from browserflow.core.exceptions import BundleNotFoundError, FileOperationError, ValidationError
from browserflow.execution.bundle import (
    FailureBundleBuilder,
    extract_trace_logs,
    generate_failure_bundle,
    load_failure_bundle,
)


@pytest.fixture
def builder(config):
    """Create a failure bundle builder for the temporary project."""
    return FailureBundleBuilder(config)


def write_trace(path):
    """Write a minimal Playwright-style trace archive."""
    trace_events = [
        {"type": "before", "callId": "call@1", "apiName": "page.goto"},
        {
            "type": "console",
            "messageType": "error",
            "text": "Uncaught TypeError: x is undefined",
            "location": {"url": "https://example.com/app.js", "lineNumber": 10},
            "time": 1200.5,
        },
        {"type": "console", "messageType": "log", "text": "ready"},
    ]
    network_events = [
        {
            "type": "resource-snapshot",
            "snapshot": {
                "startedDateTime": "2024-01-15T14:30:22.000Z",
                "request": {"method": "GET", "url": "https://example.com/api/cart"},
                "response": {"status": 500, "statusText": "Internal Server Error"},
            },
        }
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(
            "trace.trace",
            "\n".join(json.dumps(e) for e in trace_events) + "\nnot json\n",
        )
        archive.writestr("trace.network", "\n".join(json.dumps(e) for e in network_events))
        archive.writestr("resources/abc.png", b"\x89PNG")
    return path


class TestExtractTraceLogs:
    """Test cases for trace log extraction."""

    def test_extracts_console_and_network(self, temp_project):
        """Test console messages and network requests are read from the trace."""
        trace = write_trace(temp_project / "trace.zip")

        console, network = extract_trace_logs(trace)

        assert console == [
            {
                "type": "error",
                "text": "Uncaught TypeError: x is undefined",
                "location": {"url": "https://example.com/app.js", "lineNumber": 10},
                "time": 1200.5,
            },
            {"type": "log", "text": "ready"},
        ]
        assert network == [
            {
                "method": "GET",
                "url": "https://example.com/api/cart",
                "status": 500,
                "status_text": "Internal Server Error",
                "started_at": "2024-01-15T14:30:22.000Z",
            }
        ]

    def test_unreadable_archive(self, temp_project):
        """Test a corrupt archive yields empty logs."""
        trace = temp_project / "trace.zip"
        trace.write_bytes(b"not a zip")

        assert extract_trace_logs(trace) == ([], [])


class TestGenerateFailureBundle:
    """Test cases for FailureBundleBuilder.generate_failure_bundle."""

    def test_timeout_without_trace(self, builder, run_store, raw_artifacts_dir, sample_failure):
        """Test a timeout with no artifacts still writes logs and a valid bundle."""
        run_dir = run_store.create_run("checkout")

        bundle_path = builder.generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)

        assert bundle_path == run_dir / "failure.json"
        logs_dir = run_dir / "artifacts" / "logs"
        assert json.loads((logs_dir / "console.json").read_text(encoding="utf-8")) == []
        assert json.loads((logs_dir / "network.json").read_text(encoding="utf-8")) == []

        data = json.loads(bundle_path.read_text(encoding="utf-8"))
        assert data["run_id"] == run_dir.name
        assert data["spec_name"] == "checkout"
        assert data["failed_at"].endswith("Z")
        assert data["failure"] == {
            "step_id": "step-3",
            "action": "click",
            "error_message": sample_failure.message,
            "error_type": "timeout",
        }
        assert data["context"] == {
            "url": "https://shop.example.com/cart",
            "viewport": {"width": 1280, "height": 720},
            "browser": "chromium",
        }
        assert set(data["artifacts"]) == {"console_log", "network_log"}
        assert [s["type"] for s in data["suggestions"]] == ["increase_timeout", "investigate"]

    def test_missing_raw_directory(self, builder, run_store, temp_project, sample_failure):
        """Test a raw artifacts directory that does not exist is not an error."""
        run_dir = run_store.create_run("checkout")

        bundle_path = builder.generate_failure_bundle(
            run_dir, sample_failure, temp_project / "does-not-exist"
        )

        assert load_failure_bundle(bundle_path).failure.error_type is ErrorType.TIMEOUT

    def test_copies_found_artifacts(
        self, builder, run_store, raw_artifacts_dir, sample_failure, make_image
    ):
        """Test trace, screenshot and video are copied into the stable layout."""
        run_dir = run_store.create_run("checkout")
        test_dir = raw_artifacts_dir / "checkout-chromium"
        write_trace(test_dir / "trace.zip")
        make_image(test_dir / "test-failed-1.png", (255, 0, 0))
        (test_dir / "video.webm").write_bytes(b"webm")

        builder.generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)
        bundle = load_failure_bundle(run_dir)

        artifacts = run_dir / "artifacts"
        assert bundle.artifacts.trace == str(artifacts / "trace.zip")
        assert bundle.artifacts.screenshot == str(artifacts / "screenshots" / "failure.png")
        assert bundle.artifacts.video == str(artifacts / "video.webm")
        assert bundle.artifacts.diff is None
        assert (artifacts / "trace.zip").read_bytes() == (test_dir / "trace.zip").read_bytes()
        assert (artifacts / "video.webm").read_bytes() == b"webm"

        console = json.loads((artifacts / "logs" / "console.json").read_text(encoding="utf-8"))
        assert [entry["text"] for entry in console] == [
            "Uncaught TypeError: x is undefined",
            "ready",
        ]

    def test_screenshot_diff_copies_trio(
        self, builder, run_store, raw_artifacts_dir, sample_failure, make_image
    ):
        """Test visual failures copy the expected/actual/diff images."""
        run_dir = run_store.create_run("checkout")
        for suffix in ("expected", "actual", "diff"):
            make_image(raw_artifacts_dir / "home" / f"home-{suffix}.png", (0, 0, 255))
        failure = sample_failure.model_copy(
            update={"message": "Screenshot comparison failed: 1200 pixels differ"}
        )

        builder.generate_failure_bundle(run_dir, failure, raw_artifacts_dir)
        bundle = load_failure_bundle(run_dir)

        diff_dir = run_dir / "artifacts" / "diff"
        assert bundle.failure.error_type is ErrorType.SCREENSHOT_DIFF
        assert bundle.artifacts.diff.baseline == str(diff_dir / "baseline.png")
        assert bundle.artifacts.diff.actual == str(diff_dir / "actual.png")
        assert bundle.artifacts.diff.diff == str(diff_dir / "diff.png")
        assert all((diff_dir / f"{role}.png").is_file() for role in ("baseline", "actual", "diff"))

    def test_diff_images_ignored_for_other_failures(
        self, builder, run_store, raw_artifacts_dir, sample_failure, make_image
    ):
        """Test the image trio is only collected for visual failures."""
        run_dir = run_store.create_run("checkout")
        make_image(raw_artifacts_dir / "home-actual.png", (0, 0, 255))

        builder.generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)

        assert load_failure_bundle(run_dir).artifacts.diff is None
        assert not (run_dir / "artifacts" / "diff").exists()

    def test_regeneration_overwrites(self, builder, run_store, raw_artifacts_dir, sample_failure):
        """Test generating twice for a run leaves exactly one bundle."""
        run_dir = run_store.create_run("checkout")
        builder.generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)
        failure = sample_failure.model_copy(update={"message": "Expected: 1 Received: 2"})

        builder.generate_failure_bundle(run_dir, failure, raw_artifacts_dir)

        assert load_failure_bundle(run_dir).failure.error_type is ErrorType.ASSERTION_FAILED
        assert [p.name for p in run_dir.iterdir() if p.name.startswith("failure")] == [
            "failure.json"
        ]

    def test_raw_artifacts_inside_run(self, builder, run_store, sample_failure, make_image):
        """Test the run's own copies are not picked up when scanning the run itself."""
        run_dir = run_store.create_run("checkout")
        make_image(run_dir / "artifacts" / "screenshots" / "test-failed-1.png", (255, 0, 0))

        builder.generate_failure_bundle(run_dir, sample_failure, run_dir)
        builder.generate_failure_bundle(run_dir, sample_failure, run_dir)

        screenshot = run_dir / "artifacts" / "screenshots" / "failure.png"
        assert load_failure_bundle(run_dir).artifacts.screenshot == str(screenshot)

    def test_artifacts_already_in_run_slots(
        self, builder, run_store, sample_failure, make_image
    ):
        """Test artifacts written straight into the run's slots are recorded in place."""
        run_dir = run_store.create_run("checkout")
        trace = write_trace(run_dir / "artifacts" / "trace.zip")
        video = run_dir / "artifacts" / "video.webm"
        video.write_bytes(b"webm")
        screenshot = run_dir / "artifacts" / "screenshots" / "failure.png"
        make_image(screenshot, (255, 0, 0))

        builder.generate_failure_bundle(run_dir, sample_failure, run_dir)

        bundle = load_failure_bundle(run_dir)
        assert bundle.artifacts.trace == str(trace)
        assert bundle.artifacts.video == str(video)
        assert bundle.artifacts.screenshot == str(screenshot)
        assert video.read_bytes() == b"webm"
        console = json.loads(
            (run_dir / "artifacts" / "logs" / "console.json").read_text(encoding="utf-8")
        )
        assert console[0]["text"] == "Uncaught TypeError: x is undefined"

    def test_fresh_artifact_replaces_slot_copy(
        self, builder, run_store, sample_failure, make_image
    ):
        """Test a raw artifact elsewhere in the tree wins over an existing slot file."""
        run_dir = run_store.create_run("checkout")
        slot = run_dir / "artifacts" / "video.webm"
        slot.parent.mkdir(parents=True, exist_ok=True)
        slot.write_bytes(b"old")
        (run_dir / "test-results").mkdir()
        (run_dir / "test-results" / "video.webm").write_bytes(b"new")

        builder.generate_failure_bundle(run_dir, sample_failure, run_dir)

        assert load_failure_bundle(run_dir).artifacts.video == str(slot)
        assert slot.read_bytes() == b"new"

    def test_write_failure_is_fatal(self, builder, run_store, raw_artifacts_dir, sample_failure):
        """Test an unwritable bundle raises FileOperationError."""
        run_dir = run_store.create_run("checkout")

        with patch(
            "browserflow.execution.bundle.write_json", side_effect=PermissionError("denied")
        ):
            with pytest.raises(FileOperationError, match="Failed to write failure bundle"):
                builder.generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)

    def test_module_level_function(self, run_store, raw_artifacts_dir, sample_failure):
        """Test the module-level helper writes the bundle."""
        run_dir = run_store.create_run("checkout")

        bundle_path = generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)

        assert bundle_path.is_file()


class TestLoadFailureBundle:
    """Test cases for loading and finding bundles."""

    def test_missing_bundle(self, temp_project):
        """Test loading a missing bundle raises BundleNotFoundError."""
        with pytest.raises(BundleNotFoundError):
            load_failure_bundle(temp_project)

    def test_corrupt_bundle(self, temp_project):
        """Test a corrupt bundle raises ValidationError."""
        (temp_project / "failure.json").write_text("{broken", encoding="utf-8")

        with pytest.raises(ValidationError, match="Corrupt failure bundle"):
            load_failure_bundle(temp_project / "failure.json")

    def test_invalid_bundle(self, temp_project):
        """Test a bundle missing required fields raises ValidationError."""
        (temp_project / "failure.json").write_text('{"run_id": "x"}', encoding="utf-8")

        with pytest.raises(ValidationError):
            load_failure_bundle(temp_project)

    def test_round_trip_model(self, builder, run_store, raw_artifacts_dir, sample_failure):
        """Test the loaded bundle is a FailureBundle with ranked suggestions."""
        run_dir = run_store.create_run("checkout")
        builder.generate_failure_bundle(run_dir, sample_failure, raw_artifacts_dir)

        bundle = load_failure_bundle(run_dir)

        assert isinstance(bundle, FailureBundle)
        assert bundle.suggestions[0].patch == {"timeout_multiplier": 2}

    def test_find_latest_failure(self, builder, run_store, raw_artifacts_dir, sample_failure):
        """Test the newest run with a readable bundle is found."""
        older = run_store.create_run("checkout")
        builder.generate_failure_bundle(older, sample_failure, raw_artifacts_dir)
        newer = run_store.create_run("checkout")
        (newer / "failure.json").write_text("{broken", encoding="utf-8")
        run_store.create_run("checkout")

        assert builder.find_latest_failure("checkout") == older

    def test_find_latest_failure_across_specs(
        self, builder, run_store, raw_artifacts_dir, sample_failure
    ):
        """Test searching every spec returns the newest bundle overall."""
        first = run_store.create_run("login")
        builder.generate_failure_bundle(first, sample_failure, raw_artifacts_dir)
        second = run_store.create_run("checkout")
        builder.generate_failure_bundle(second, sample_failure, raw_artifacts_dir)

        assert builder.find_latest_failure() in (first, second)
        assert builder.find_latest_failure("login") == first

    def test_find_latest_failure_none(self, builder, run_store):
        """Test None is returned when no run has a bundle."""
        run_store.create_run("checkout")

        assert builder.find_latest_failure("checkout") is None
        assert builder.find_latest_failure("unknown") is None
