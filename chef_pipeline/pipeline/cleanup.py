"""
Removal of stale working directories left behind by interrupted builds.
"""

import os
import shutil
import time
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import PipelineConfig
from ..core.errors import OperationalError
from ..core.logger import get_logger


class CleanupManager:
    """Deletes build and cache directories older than a given age. Artifacts are kept."""

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.logger = get_logger("CleanupManager")

    def cleanup_old_builds(
        self,
        max_age_seconds: float,
        now: Optional[float] = None,
        active: Iterable[str] = (),
    ) -> List[Path]:
        """
        Remove per-build directories in which nothing changed for max_age_seconds.

        A directory's age is taken from the newest entry anywhere below it,
        so a long build that keeps writing is never considered stale.

        Args:
            max_age_seconds: Minimum idle time before a directory is removed
            now: Reference time, defaults to the current time
            active: Build ids that are still running; never removed

        Returns:
            Paths that were removed

        Raises:
            OperationalError: If the build root cannot be read
        """
        now = now if now is not None else time.time()
        active = set(active)
        removed = []
        for root in (Path(self.config.build_dir), Path(self.config.cache_dir)):
            removed.extend(self._sweep(root, max_age_seconds, now, active))
        self.logger.info("cleanup_completed", removed=len(removed), max_age_seconds=max_age_seconds)
        return removed

    def _sweep(self, root: Path, max_age_seconds: float, now: float, active: set) -> List[Path]:
        if not root.exists():
            return []

        try:
            entries = list(root.iterdir())
        except OSError as e:
            raise OperationalError(f"failed to read build directory {root}: {e}") from e

        removed = []
        for entry in entries:
            if not entry.is_dir() or entry.is_symlink():
                continue
            if entry.name in active:
                self.logger.debug("cleanup_skipped_active", dir=str(entry))
                continue
            try:
                age = now - self._newest_mtime(entry)
            except OSError as e:
                self.logger.warning("stat_failed", dir=str(entry), error=str(e))
                continue

            if age > max_age_seconds:
                try:
                    shutil.rmtree(entry)
                except OSError as e:
                    self.logger.error("remove_failed", path=str(entry), error=str(e))
                    continue
                removed.append(entry)
        return removed

    @staticmethod
    def _newest_mtime(directory: Path) -> float:
        newest = directory.stat().st_mtime
        for dirpath, dirnames, filenames in os.walk(directory):
            for name in dirnames + filenames:
                try:
                    newest = max(newest, os.lstat(os.path.join(dirpath, name)).st_mtime)
                except FileNotFoundError:
                    continue
        return newest
