"""
Filesystem scope for a single build.
"""

from dataclasses import dataclass
from pathlib import Path

from .errors import OperationalError
from .file_manager import FileManager
from .logger import get_logger
from .security import InputValidator

logger = get_logger("BuildContext")


@dataclass
class BuildContext:
    """
    Working, artifact and cache directories for one build.

    Directories are namespaced by build id. ``cleanup`` removes the working
    and cache directories; artifacts outlive the build.
    """
    build_id: str
    build_dir: Path
    artifact_dir: Path
    cache_dir: Path

    @classmethod
    async def create(
        cls,
        build_id: str,
        build_root: Path,
        artifact_root: Path,
        cache_root: Path,
    ) -> "BuildContext":
        InputValidator.validate_path_component(build_id)
        context = cls(
            build_id=build_id,
            build_dir=Path(build_root) / build_id,
            artifact_dir=Path(artifact_root) / build_id,
            cache_dir=Path(cache_root) / build_id,
        )

        files = FileManager()
        for directory in (context.build_dir, context.artifact_dir, context.cache_dir):
            try:
                await files.create_directory(directory)
            except OSError as e:
                raise OperationalError(f"failed to create directory {directory}: {e}") from e

        logger.debug("build_context_created", build_id=build_id, build_dir=str(context.build_dir))
        return context

    async def cleanup(self) -> None:
        files = FileManager()
        for directory in (self.build_dir, self.cache_dir):
            try:
                await files.remove_tree(directory)
            except OSError as e:
                logger.warning("build_context_cleanup_failed", path=str(directory), error=str(e))

    async def __aenter__(self) -> "BuildContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()
