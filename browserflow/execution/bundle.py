"""
Failure bundle generation and loading.

A failure bundle is the durable record of one failed run: the failing step,
its browser context, copies of the artifacts the test executor left behind
and a list of ranked repair suggestions. It lives at ``<run_dir>/failure.json``
with the copied artifacts under ``<run_dir>/artifacts/``.
"""

import json
import shutil
import zipfile
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..analysis.advisor import classify_error, generate_repair_suggestions
from ..analysis.models import (
    BundleArtifacts,
    DiffArtifacts,
    ErrorType,
    FailureBundle,
    FailureDetails,
    TestFailure,
)
from ..core.config import Config
from ..core.exceptions import BundleNotFoundError, FileOperationError, ValidationError
from ..core.fileio import iso_timestamp, read_json, write_json
from ..core.logging_config import get_logger, log_performance
from .models import FAILURE_BUNDLE_NAME, RunPaths
from .run_store import RunStore

logger = get_logger(__name__)

TRACE_FILE_NAME = "trace.zip"
FAILURE_SCREENSHOT_PATTERN = "test-failed*.png"
VIDEO_SUFFIX = ".webm"
DIFF_IMAGE_MARKERS = {
    "baseline": ("-expected.png", "-baseline.png"),
    "actual": ("-actual.png",),
    "diff": ("-diff.png",),
}


def _iter_json_lines(data: bytes) -> Iterator[Dict[str, Any]]:
    for line in data.decode("utf-8", errors="replace").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(event, dict):
            yield event


def _console_entry(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if event.get("type") != "console":
        return None
    entry = {
        "type": event.get("messageType"),
        "text": event.get("text", ""),
        "location": event.get("location"),
        "time": event.get("time"),
    }
    return {k: v for k, v in entry.items() if v is not None}


def _network_entry(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if event.get("type") != "resource-snapshot":
        return None
    snapshot = event.get("snapshot") or {}
    request = snapshot.get("request") or {}
    response = snapshot.get("response") or {}
    entry = {
        "method": request.get("method"),
        "url": request.get("url"),
        "status": response.get("status"),
        "status_text": response.get("statusText"),
        "started_at": snapshot.get("startedDateTime"),
    }
    return {k: v for k, v in entry.items() if v is not None}


def extract_trace_logs(trace_path: Path) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Extract console messages and network requests from a Playwright trace.

    Reads the JSON-lines ``*.trace`` and ``*.network`` members of the archive.
    An unreadable archive yields two empty lists.

    Returns:
        Tuple of (console entries, network entries)
    """
    console: List[Dict[str, Any]] = []
    network: List[Dict[str, Any]] = []

    try:
        with zipfile.ZipFile(trace_path) as archive:
            for name in sorted(archive.namelist()):
                if name.endswith(".trace"):
                    extract, target = _console_entry, console
                elif name.endswith(".network"):
                    extract, target = _network_entry, network
                else:
                    continue
                for event in _iter_json_lines(archive.read(name)):
                    entry = extract(event)
                    if entry:
                        target.append(entry)
    except (zipfile.BadZipFile, OSError) as e:
        logger.warning(f"Could not read trace archive {trace_path}: {e}")
        return [], []

    return console, network


def load_failure_bundle(path_or_run_dir: Path) -> FailureBundle:
    """
    Load a failure bundle from a run directory or a ``failure.json`` path.

    Raises:
        BundleNotFoundError: If no bundle exists at the location
        ValidationError: If the bundle is not valid JSON or fails validation
    """
    path = Path(path_or_run_dir)
    bundle_path = path if path.name == FAILURE_BUNDLE_NAME else path / FAILURE_BUNDLE_NAME

    if not bundle_path.is_file():
        raise BundleNotFoundError(
            f"Failure bundle not found: {bundle_path}", bundle_path=str(bundle_path)
        )

    try:
        return FailureBundle.model_validate(read_json(bundle_path))
    except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as e:
        raise ValidationError(
            f"Corrupt failure bundle {bundle_path}: {e}",
            validation_type="failure_bundle",
        ) from e


class FailureBundleBuilder:
    """
    Builds failure bundles from raw execution artifacts.

    The raw artifacts tree is searched recursively for a trace archive, a
    failure screenshot, a video and (for visual failures) the
    expected/actual/diff image trio. Whatever is found is copied into a stable
    layout inside the run; anything missing is simply left out of the bundle.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.run_store = RunStore(self.config)

    @log_performance("Failure bundle generation")
    def generate_failure_bundle(
        self,
        run_dir: Path,
        failure: TestFailure,
        raw_artifacts_dir: Path,
    ) -> Path:
        """
        Write the failure bundle for a run.

        Re-generating a bundle for the same run replaces the previous one.

        Args:
            run_dir: Run directory the failure belongs to
            failure: Failure reported by the test executor
            raw_artifacts_dir: Directory tree produced by the test executor

        Returns:
            Path to the written ``failure.json``

        Raises:
            FileOperationError: If artifacts or the bundle cannot be written
        """
        paths = RunPaths.from_run_dir(run_dir)
        error_type = classify_error(failure.message)

        try:
            artifacts = self._collect_artifacts(paths, Path(raw_artifacts_dir), error_type)
            bundle = FailureBundle(
                run_id=paths.run_id,
                spec_name=failure.spec_name,
                failed_at=iso_timestamp(),
                failure=FailureDetails(
                    step_id=failure.step_id,
                    action=failure.action,
                    error_message=failure.message,
                    error_type=error_type,
                ),
                context=failure.context,
                artifacts=artifacts,
                suggestions=generate_repair_suggestions(failure),
            )
            write_json(paths.failure_path, bundle.to_json_dict())
        except OSError as e:
            raise FileOperationError(
                f"Failed to write failure bundle: {e}",
                file_path=str(paths.failure_path),
                operation="generate_failure_bundle",
            ) from e

        logger.info(
            f"Wrote failure bundle for {failure.spec_name} ({error_type.value})",
            extra={
                "spec_name": failure.spec_name,
                "run_id": paths.run_id,
                "metadata": {
                    "error_type": error_type.value,
                    "artifacts": sorted(artifacts.model_dump(exclude_none=True)),
                },
            },
        )
        return paths.failure_path

    def _collect_artifacts(
        self, paths: RunPaths, raw_root: Path, error_type: ErrorType
    ) -> BundleArtifacts:
        files = self._scan(raw_root)
        found: Dict[str, Any] = {}

        paths.artifacts_dir.mkdir(parents=True, exist_ok=True)

        console: List[Dict[str, Any]] = []
        network: List[Dict[str, Any]] = []
        trace = self._pick(files, lambda p: p.name == TRACE_FILE_NAME, paths.trace_path)
        if trace:
            found["trace"] = self._copy(trace, paths.trace_path)
            console, network = extract_trace_logs(paths.trace_path)

        # Log files are always written so consumers see a stable layout
        write_json(paths.console_log_path, console)
        write_json(paths.network_log_path, network)
        found["console_log"] = str(paths.console_log_path)
        found["network_log"] = str(paths.network_log_path)

        video = self._pick(files, lambda p: p.suffix == VIDEO_SUFFIX, paths.video_path)
        if video:
            found["video"] = self._copy(video, paths.video_path)

        screenshot = self._pick(
            files,
            lambda p: fnmatch(p.name, FAILURE_SCREENSHOT_PATTERN),
            paths.failure_screenshot_path,
        )
        if screenshot:
            found["screenshot"] = self._copy(screenshot, paths.failure_screenshot_path)

        if error_type is ErrorType.SCREENSHOT_DIFF:
            diff = self._copy_diff_images(files, paths)
            if not diff.is_empty:
                found["diff"] = diff

        return BundleArtifacts(**found)

    def _copy_diff_images(self, files: List[Path], paths: RunPaths) -> DiffArtifacts:
        copied: Dict[str, str] = {}
        for role, markers in DIFF_IMAGE_MARKERS.items():
            destination = paths.diff_dir / f"{role}.png"
            source = self._pick(
                files, lambda p: any(m in p.name for m in markers), destination
            )
            if source:
                copied[role] = self._copy(source, destination)
        return DiffArtifacts(**copied)

    @staticmethod
    def _scan(root: Path) -> List[Path]:
        if not root.is_dir():
            logger.debug(f"Raw artifacts directory does not exist: {root}")
            return []
        return sorted(p for p in root.rglob("*") if p.is_file())

    @staticmethod
    def _pick(
        files: List[Path], predicate: Callable[[Path], bool], destination: Path
    ) -> Optional[Path]:
        # A fresh raw artifact wins over a file already sitting in its slot
        target = destination.resolve()
        fresh = next((p for p in files if p.resolve() != target and predicate(p)), None)
        if fresh:
            return fresh
        return next((p for p in files if p.resolve() == target), None)

    @staticmethod
    def _copy(source: Path, destination: Path) -> str:
        if source.resolve() != destination.resolve():
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        return str(destination)

    def find_latest_failure(self, spec_name: Optional[str] = None) -> Optional[Path]:
        """
        Find the newest run holding a readable failure bundle.

        Args:
            spec_name: Restrict the search to one spec; all specs when omitted

        Returns:
            The run directory, or ``None`` if no run has a bundle
        """
        specs = [spec_name] if spec_name else self.run_store.list_specs()
        run_dirs = [run_dir for spec in specs for run_dir in self.run_store.list_runs(spec)]
        run_dirs.sort(key=lambda p: p.name, reverse=True)

        for run_dir in run_dirs:
            if not (run_dir / FAILURE_BUNDLE_NAME).is_file():
                continue
            try:
                load_failure_bundle(run_dir)
            except ValidationError as e:
                logger.warning(f"Skipping corrupt failure bundle in {run_dir}: {e.message}")
                continue
            return run_dir

        return None


def generate_failure_bundle(
    run_dir: Path, failure: TestFailure, raw_artifacts_dir: Path
) -> Path:
    """Write the failure bundle for ``run_dir``. See :class:`FailureBundleBuilder`."""
    return FailureBundleBuilder().generate_failure_bundle(run_dir, failure, raw_artifacts_dir)
