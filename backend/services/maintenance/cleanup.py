"""
QrBites Maintenance - Local upload cleanup

Deletes the local copies of migrated media once both --cleanup and
--cleanup-confirm are given. Deletion is unconditional once confirmed: there
is no check that every file was actually migrated.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from .log import get_logger

logger = get_logger(__name__)


@dataclass
class CleanupResult:
    """Outcome of a cleanup sweep."""
    executed: bool = False
    files_deleted: int = 0
    directories_removed: int = 0
    root_removed: bool = False
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executed": self.executed,
            "filesDeleted": self.files_deleted,
            "directoriesRemoved": self.directories_removed,
            "rootRemoved": self.root_removed,
            "errors": list(self.errors),
        }


class CleanupSweep:
    """Removes files below the uploads root after a confirmed migration."""

    def __init__(self, uploads_dir: Union[str, Path]):
        self.uploads_dir = Path(uploads_dir)

    def sweep(self, cleanup: bool, cleanup_confirm: bool) -> CleanupResult:
        result = CleanupResult()

        if not cleanup:
            return result
        if not cleanup_confirm:
            logger.warning("Cleanup requires explicit confirmation. Use --cleanup-confirm flag.")
            return result

        result.executed = True
        logger.info("Starting local file cleanup...")

        if not self.uploads_dir.is_dir():
            logger.info("No uploads directory found. Nothing to clean up.")
            return result

        try:
            entries = list(self.uploads_dir.iterdir())
        except OSError as e:
            self._record_error(self.uploads_dir, e, result)
            return result

        for entry in entries:
            # Symlinks are removed as links and never followed
            if entry.is_symlink():
                self._unlink(entry, result)
            elif entry.is_dir():
                self._sweep_directory(entry, result)

        self._remove_root(result)

        logger.success(f"Cleaned up {result.files_deleted} local files")
        if result.errors:
            logger.warning(f"{len(result.errors)} paths could not be removed")
        return result

    def _sweep_directory(self, subdir: Path, result: CleanupResult) -> None:
        walk = os.walk(
            subdir,
            topdown=False,
            followlinks=False,
            onerror=lambda e: self._record_error(Path(e.filename or subdir), e, result),
        )
        for dirpath, dirnames, filenames in walk:
            for name in filenames:
                self._unlink(Path(dirpath) / name, result)
            # os.walk lists symlinked directories without descending into them
            for name in dirnames:
                path = Path(dirpath) / name
                if path.is_symlink():
                    self._unlink(path, result)
            self._rmdir(Path(dirpath), result)

    def _remove_root(self, result: CleanupResult) -> None:
        try:
            if any(self.uploads_dir.iterdir()):
                return
            self.uploads_dir.rmdir()
        except OSError as e:
            self._record_error(self.uploads_dir, e, result)
            return
        result.root_removed = True

    def _record_error(self, path: Path, error: OSError, result: CleanupResult) -> None:
        logger.error(f"Failed to remove {path}: {error}")
        result.errors.append({"path": str(path), "error": str(error)})

    def _unlink(self, path: Path, result: CleanupResult) -> None:
        try:
            path.unlink()
            result.files_deleted += 1
        except OSError as e:
            self._record_error(path, e, result)

    def _rmdir(self, path: Path, result: CleanupResult) -> None:
        try:
            path.rmdir()
            result.directories_removed += 1
        except OSError as e:
            self._record_error(path, e, result)
