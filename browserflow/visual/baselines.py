"""
Visual baseline storage and the accept workflow.

Baselines live under ``<artifacts_root>/baselines/<spec_name>/`` as
``<name>.png`` with an optional ``<name>.meta.json`` acceptance record. Each
record stores the hash of the baseline it replaced and the hash of the new
one, so the acceptance history of a screenshot can be replayed from the
chain of records without keeping every historical image.
"""

import hashlib
import json
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Config
from ..core.exceptions import FileOperationError
from ..core.fileio import atomic_copy, iso_timestamp, read_json, write_json
from ..core.logging_config import get_logger, log_performance
from ..execution.models import FAILURE_SCREENSHOT_NAME, RunPaths, is_run_id
from ..execution.run_store import RunStore, validate_spec_name
from .comparator import ImageComparator
from .models import (
    AcceptanceRecord,
    AcceptResult,
    BaselineInfo,
    BaselineStatus,
    BaselineStatusKind,
    Screenshot,
)

logger = get_logger(__name__)

IMAGE_SUFFIX = ".png"
META_SUFFIX = ".meta.json"
HASH_LENGTH = 16
HASH_CHUNK_SIZE = 64 * 1024


class BaselineStore:
    """
    Accepted baseline images per spec and their acceptance metadata.

    Actual screenshots are read from the latest run as resolved by
    :class:`RunStore`, so "most recent" means the same thing everywhere.
    """

    def __init__(self, config: Optional[Config] = None, run_store: Optional[RunStore] = None):
        """
        Initialize the baseline store.

        Args:
            config: BrowserFlow configuration
            run_store: Run store used to resolve runs; built from config if omitted
        """
        self.config = config or Config()
        self.baselines_root = self.config.baselines_dir
        self.run_store = run_store or RunStore(self.config)
        self.comparator = ImageComparator.from_config(self.config)

    def _spec_dir(self, spec_name: str) -> Path:
        return self.baselines_root / validate_spec_name(spec_name)

    def baseline_path(self, spec_name: str, name: str) -> Path:
        return self._spec_dir(spec_name) / f"{name}{IMAGE_SUFFIX}"

    def meta_path(self, spec_name: str, name: str) -> Path:
        return self._spec_dir(spec_name) / f"{name}{META_SUFFIX}"

    def get_baselines_for_spec(self, spec_name: str) -> List[BaselineInfo]:
        """
        List the accepted baselines of a spec, sorted by name.

        Returns an empty list when the spec has no baseline directory.
        """
        spec_dir = self._spec_dir(spec_name)
        if not spec_dir.is_dir():
            return []

        baselines = []
        for image in sorted(spec_dir.glob(f"*{IMAGE_SUFFIX}")):
            name = image.name[: -len(IMAGE_SUFFIX)]
            baselines.append(
                BaselineInfo(
                    name=name,
                    path=str(image),
                    acceptance=self.get_acceptance_record(spec_name, name),
                )
            )
        return baselines

    def get_actuals_from_run(self, run_dir: Path) -> List[Screenshot]:
        """Candidate screenshots of a run, sorted by name."""
        screenshots_dir = RunPaths.from_run_dir(run_dir).screenshots_dir
        if not screenshots_dir.is_dir():
            return []

        return [
            Screenshot(name=path.name[: -len(IMAGE_SUFFIX)], path=str(path))
            for path in sorted(screenshots_dir.glob(f"*{IMAGE_SUFFIX}"))
            if path.name != FAILURE_SCREENSHOT_NAME
        ]

    def get_latest_run(self, spec_name: str) -> Optional[Path]:
        return self.run_store.get_latest_run(spec_name)

    def get_run_dir(self, spec_name: str, run_id: str) -> Path:
        return self.run_store.get_run_dir(spec_name, run_id)

    @log_performance("Baseline status")
    def get_baseline_status(
        self, spec_name: str, diff_dir: Optional[Path] = None
    ) -> BaselineStatus:
        """
        Compare a spec's baselines against the screenshots of its latest run.

        Args:
            spec_name: Spec to inspect
            diff_dir: Where to write ``<name>-diff.png`` images for differing
                baselines; no diff images are written when omitted

        Returns:
            BaselineStatus with one entry per baseline and the names of actual
            screenshots that have no baseline yet
        """
        baselines = self.get_baselines_for_spec(spec_name)
        run_dir = self.get_latest_run(spec_name)

        if run_dir is None:
            return BaselineStatus(spec_name=spec_name, baselines=baselines)

        actuals = {actual.name: actual for actual in self.get_actuals_from_run(run_dir)}
        results = []

        for baseline in baselines:
            actual = actuals.get(baseline.name)
            if actual is None:
                results.append(baseline.model_copy(update={"status": BaselineStatusKind.MISSING}))
                continue

            diff_path = Path(diff_dir) / f"{baseline.name}-diff.png" if diff_dir else None
            comparison = self.comparator.compare(Path(baseline.path), Path(actual.path), diff_path)
            if comparison.match:
                results.append(baseline.model_copy(update={"status": BaselineStatusKind.MATCH}))
            else:
                results.append(
                    baseline.model_copy(
                        update={
                            "status": BaselineStatusKind.DIFF,
                            "diff_percent": comparison.diff_percent,
                            "diff_path": comparison.diff_path,
                        }
                    )
                )

        known = {baseline.name for baseline in baselines}
        new_screenshots = [name for name in actuals if name not in known]

        logger.debug(
            f"Baseline status for {spec_name}",
            extra={
                "spec_name": spec_name,
                "metadata": {
                    "run_dir": str(run_dir),
                    "baselines": len(results),
                    "new_screenshots": len(new_screenshots),
                },
            },
        )

        return BaselineStatus(
            spec_name=spec_name,
            run_dir=str(run_dir),
            baselines=results,
            new_screenshots=new_screenshots,
        )

    def copy_to_baselines(self, spec_name: str, name: str, source_path: Path) -> Path:
        """
        Copy a screenshot into the spec's baseline slot, replacing any existing one.

        Raises:
            FileOperationError: If the source cannot be read or the copy fails
        """
        destination = self.baseline_path(spec_name, name)
        try:
            atomic_copy(Path(source_path), destination)
        except OSError as e:
            raise FileOperationError(
                f"Failed to copy {source_path} to baselines: {e.strerror or e}",
                file_path=str(source_path),
                operation="copy_to_baselines",
            ) from e
        return destination

    @staticmethod
    def hash_file(path: Path) -> str:
        """Short SHA-256 content fingerprint, used for change detection only."""
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()[:HASH_LENGTH]

    def get_existing_baseline_hash(self, spec_name: str, name: str) -> Optional[str]:
        path = self.baseline_path(spec_name, name)
        if not path.is_file():
            return None
        return self.hash_file(path)

    def record_acceptance(self, spec_name: str, name: str, record: AcceptanceRecord) -> Path:
        """Write the acceptance record next to the baseline, replacing the previous one."""
        path = self.meta_path(spec_name, name)
        try:
            write_json(path, record.model_dump(mode="json"))
        except OSError as e:
            raise FileOperationError(
                f"Failed to write acceptance record: {e}",
                file_path=str(path),
                operation="record_acceptance",
            ) from e
        return path

    def get_acceptance_record(self, spec_name: str, name: str) -> Optional[AcceptanceRecord]:
        path = self.meta_path(spec_name, name)
        if not path.is_file():
            return None
        try:
            return AcceptanceRecord.model_validate(read_json(path))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as e:
            logger.warning(f"Skipping unreadable acceptance record {path}: {e}")
            return None

    @log_performance("Baseline acceptance")
    def accept_baselines(
        self,
        spec_name: str,
        run_id: Optional[str] = None,
        screenshot: Optional[str] = None,
        accept_all: bool = False,
    ) -> AcceptResult:
        """
        Promote screenshots of a run to baselines.

        Every screenshot is accepted independently: a failure is recorded in
        ``failed`` and the remaining screenshots are still processed.

        Args:
            spec_name: Spec whose baselines are updated
            run_id: Run to accept from; the latest run when omitted
            screenshot: Accept only this screenshot
            accept_all: Accept every screenshot of the run

        Returns:
            AcceptResult listing accepted names and failure descriptions
        """
        if run_id:
            if not is_run_id(run_id) or not self.run_store.run_exists(spec_name, run_id):
                return AcceptResult(failed=[f"Run {run_id} not found"])
            run_dir = self.get_run_dir(spec_name, run_id)
        else:
            run_dir = self.get_latest_run(spec_name)
            if run_dir is None:
                return AcceptResult(failed=["No runs found"])
        run_id = run_dir.name

        actuals = self.get_actuals_from_run(run_dir)
        if screenshot:
            to_accept = [actual for actual in actuals if actual.name == screenshot]
            if not to_accept:
                return AcceptResult(
                    failed=[f"{screenshot}: not found in run {run_id}"], run_id=run_id
                )
        else:
            if not accept_all:
                logger.warning(
                    f"No screenshot named for {spec_name}, accepting all screenshots"
                )
            to_accept = actuals

        if not to_accept:
            return AcceptResult(failed=["No screenshots found to accept"], run_id=run_id)

        accepted: List[str] = []
        failed: List[str] = []

        for actual in to_accept:
            try:
                previous_hash = self.get_existing_baseline_hash(spec_name, actual.name)
                destination = self.copy_to_baselines(spec_name, actual.name, Path(actual.path))
                record = AcceptanceRecord(
                    accepted_at=iso_timestamp(),
                    accepted_by=self.config.accepted_by,
                    run_id=run_id,
                    previous_hash=previous_hash,
                    current_hash=self.hash_file(destination),
                )
                self.record_acceptance(spec_name, actual.name, record)
            except (OSError, FileOperationError) as e:
                message = e.message if isinstance(e, FileOperationError) else str(e)
                failed.append(f"{actual.name}: {message}")
                logger.warning(
                    f"Failed to accept {actual.name}: {message}",
                    extra={"spec_name": spec_name, "run_id": run_id, "screenshot": actual.name},
                )
                continue

            accepted.append(actual.name)
            logger.info(
                f"Accepted baseline {actual.name}",
                extra={
                    "spec_name": spec_name,
                    "run_id": run_id,
                    "screenshot": actual.name,
                    "metadata": {
                        "previous_hash": previous_hash,
                        "current_hash": record.current_hash,
                    },
                },
            )

        return AcceptResult(accepted=accepted, failed=failed, run_id=run_id)

    def update_baselines(self, spec_name: str) -> AcceptResult:
        """Accept every screenshot of the latest run."""
        return self.accept_baselines(spec_name, accept_all=True)

    def get_baseline_diffs(
        self, spec_name: str, diff_dir: Optional[Path] = None
    ) -> List[BaselineInfo]:
        """Baselines that differ from the latest run."""
        status = self.get_baseline_status(spec_name, diff_dir=diff_dir)
        return [b for b in status.baselines if b.status is BaselineStatusKind.DIFF]


def get_baseline_status(
    spec_name: str, config: Optional[Config] = None, diff_dir: Optional[Path] = None
) -> BaselineStatus:
    """Baseline status for ``spec_name``. See :meth:`BaselineStore.get_baseline_status`."""
    return BaselineStore(config).get_baseline_status(spec_name, diff_dir=diff_dir)


def accept_baselines(
    spec_name: str,
    config: Optional[Config] = None,
    run_id: Optional[str] = None,
    screenshot: Optional[str] = None,
    accept_all: bool = False,
) -> AcceptResult:
    """Accept screenshots as baselines. See :meth:`BaselineStore.accept_baselines`."""
    return BaselineStore(config).accept_baselines(
        spec_name, run_id=run_id, screenshot=screenshot, accept_all=accept_all
    )
