"""
Immutable run directory storage.

Each execution of a spec gets its own run directory under
``<artifacts_root>/runs/<spec_name>/``. Run directories are never reused or
overwritten; the only mutable piece of state is the per-spec ``latest``
pointer, which is replaced atomically after a run directory exists.
"""

import os
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from ..core.config import Config
from ..core.exceptions import FileOperationError, ValidationError
from ..core.fileio import atomic_write_text
from ..core.logging_config import get_logger
from .models import (
    LATEST_POINTER_NAME,
    RUN_ID_PATTERN,
    RUN_TIMESTAMP_FORMAT,
    RunPaths,
    is_run_id,
)

logger = get_logger(__name__)

MAX_SUFFIX = 0xFFFFFF
MAX_CREATE_ATTEMPTS = 5


def validate_spec_name(spec_name: str) -> str:
    """Ensure a spec name is usable as a single directory name."""
    if (
        not spec_name
        or spec_name in (".", "..")
        or "/" in spec_name
        or "\\" in spec_name
        or spec_name.strip() != spec_name
    ):
        raise ValidationError(
            f"Invalid spec name: {spec_name!r}",
            validation_type="spec_name",
            violations=["spec name must be a single non-empty path component"],
        )
    return spec_name


def _next_second(timestamp: str) -> str:
    moment = datetime.strptime(timestamp, RUN_TIMESTAMP_FORMAT) + timedelta(seconds=1)
    return moment.strftime(RUN_TIMESTAMP_FORMAT)


def create_run_id(after: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Generate a run id of the form ``run-<YYYYMMDDHHMMSS>-<6 hex>``.

    The timestamp is UTC and the suffix random. When ``after`` is the newest
    existing id, the result is guaranteed to sort after it even if both fall
    in the same second or the clock moved backwards.
    """
    moment = now or datetime.now(timezone.utc)
    timestamp = moment.strftime(RUN_TIMESTAMP_FORMAT)
    low = 0

    match = RUN_ID_PATTERN.match(after) if after else None
    if match:
        after_timestamp, after_suffix = match.group(1), int(match.group(2), 16)
        if after_timestamp > timestamp:
            timestamp = after_timestamp
        if after_timestamp == timestamp:
            low = after_suffix + 1
            if low > MAX_SUFFIX:
                timestamp = _next_second(timestamp)
                low = 0

    suffix = low + secrets.randbelow(MAX_SUFFIX - low + 1)
    return f"run-{timestamp}-{suffix:06x}"


class RunStore:
    """
    Creates and enumerates immutable run directories per spec.

    "Latest" is resolved through the pointer file when it names an existing
    run, otherwise through the greatest run id. Run ids embed a sortable
    timestamp, so ordering never depends on file modification times.
    """

    def __init__(self, config: Config):
        """
        Initialize the run store.

        Args:
            config: BrowserFlow configuration (provides the artifact root)
        """
        self.config = config
        self.runs_root = config.runs_dir

    def _spec_dir(self, spec_name: str) -> Path:
        return self.runs_root / validate_spec_name(spec_name)

    def _run_ids(self, spec_dir: Path) -> List[str]:
        """Run ids in ``spec_dir``, newest first."""
        if not spec_dir.is_dir():
            return []
        return sorted(
            (
                entry.name
                for entry in spec_dir.iterdir()
                if is_run_id(entry.name) and entry.is_dir() and not entry.is_symlink()
            ),
            reverse=True,
        )

    def create_run(self, spec_name: str) -> Path:
        """
        Create a new, empty run directory for a spec.

        The directory contains only ``artifacts/screenshots`` and
        ``artifacts/logs``. The latest pointer is updated after the directory
        is complete, so it never names a run that does not exist.

        Returns:
            Path to the new run directory

        Raises:
            FileOperationError: If the directory or pointer cannot be written
        """
        spec_dir = self._spec_dir(spec_name)
        try:
            spec_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(
                f"Failed to create runs directory for {spec_name}: {e}",
                file_path=str(spec_dir),
                operation="create_run",
            ) from e

        run_dir: Optional[Path] = None
        for _ in range(MAX_CREATE_ATTEMPTS):
            existing = self._run_ids(spec_dir)
            candidate = spec_dir / create_run_id(after=existing[0] if existing else None)
            try:
                candidate.mkdir()
            except FileExistsError:
                # Another process took the id
                continue
            except OSError as e:
                raise FileOperationError(
                    f"Failed to create run directory: {e}",
                    file_path=str(candidate),
                    operation="create_run",
                ) from e
            run_dir = candidate
            break

        if run_dir is None:
            raise FileOperationError(
                f"Could not allocate a unique run directory after {MAX_CREATE_ATTEMPTS} attempts",
                file_path=str(spec_dir),
                operation="create_run",
            )

        paths = RunPaths(spec_name=spec_name, run_id=run_dir.name, run_dir=run_dir)
        try:
            paths.screenshots_dir.mkdir(parents=True)
            paths.logs_dir.mkdir(parents=True)
        except OSError as e:
            raise FileOperationError(
                f"Failed to create artifact directories: {e}",
                file_path=str(paths.artifacts_dir),
                operation="create_run",
            ) from e

        self._update_latest_pointer(spec_dir, run_dir.name)

        logger.info(
            f"Created run {run_dir.name} for {spec_name}",
            extra={"spec_name": spec_name, "run_id": run_dir.name},
        )
        return run_dir

    def _update_latest_pointer(self, spec_dir: Path, run_id: str) -> None:
        """Atomically replace the latest pointer with ``run_id``."""
        pointer = spec_dir / LATEST_POINTER_NAME
        try:
            atomic_write_text(pointer, run_id + "\n")
        except OSError as e:
            raise FileOperationError(
                f"Failed to update latest pointer: {e}",
                file_path=str(pointer),
                operation="update_latest",
            ) from e

    def read_latest_pointer(self, spec_name: str) -> Optional[str]:
        """
        Return the run id named by the latest pointer.

        Returns ``None`` when the pointer is absent, malformed, or names a run
        directory that no longer exists. Symlink pointers written by older
        tooling are understood as well.
        """
        pointer = self._spec_dir(spec_name) / LATEST_POINTER_NAME
        try:
            if pointer.is_symlink():
                run_id = Path(os.readlink(pointer)).name
            elif pointer.is_file():
                run_id = pointer.read_text(encoding="utf-8").strip()
            else:
                return None
        except OSError as e:
            logger.warning(f"Could not read latest pointer {pointer}: {e}")
            return None

        if not is_run_id(run_id) or not self.run_exists(spec_name, run_id):
            logger.debug(f"Ignoring stale latest pointer for {spec_name}: {run_id!r}")
            return None
        return run_id

    def get_latest_run(self, spec_name: str) -> Optional[Path]:
        """
        Resolve the most recent run directory for a spec.

        Returns:
            The run directory, or ``None`` if the spec has no runs
        """
        run_id = self.read_latest_pointer(spec_name)
        if run_id:
            return self.get_run_dir(spec_name, run_id)

        run_ids = self._run_ids(self._spec_dir(spec_name))
        if not run_ids:
            return None
        return self.get_run_dir(spec_name, run_ids[0])

    def list_runs(self, spec_name: str) -> List[Path]:
        """All run directories for a spec, newest first."""
        spec_dir = self._spec_dir(spec_name)
        return [spec_dir / run_id for run_id in self._run_ids(spec_dir)]

    def list_specs(self) -> List[str]:
        """Names of all specs that have a runs directory."""
        if not self.runs_root.is_dir():
            return []
        return sorted(entry.name for entry in self.runs_root.iterdir() if entry.is_dir())

    def get_run_dir(self, spec_name: str, run_id: str) -> Path:
        return self._spec_dir(spec_name) / run_id

    def run_exists(self, spec_name: str, run_id: str) -> bool:
        return self.get_run_dir(spec_name, run_id).is_dir()

    def run_paths(self, spec_name: str, run_id: str) -> RunPaths:
        return RunPaths(
            spec_name=spec_name,
            run_id=run_id,
            run_dir=self.get_run_dir(spec_name, run_id),
        )
