"""
File system management for the build pipeline.
Handles source tree copies, archive handling and build recipe rendering.
"""

import asyncio
import os
import shutil
import tarfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import aiofiles
import aiofiles.os
from jinja2 import BaseLoader, Environment

from .logger import get_logger
from .security import safe_extract

# Directories never copied into a build context
DEFAULT_EXCLUDES = ("node_modules", ".git")


class FileManager:
    """Manages file system operations for builds and deployments."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.logger = get_logger("FileManager")

        self.jinja_env = Environment(
            loader=BaseLoader(),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    async def read_file(self, path: Path) -> str:
        """Read file contents asynchronously."""
        full_path = self._resolve_path(path)
        async with aiofiles.open(full_path, 'r') as f:
            return await f.read()

    async def write_file(self, path: Path, content: str, create_dirs: bool = True) -> None:
        """Write content to a file asynchronously."""
        full_path = self._resolve_path(path)
        if create_dirs:
            await aiofiles.os.makedirs(full_path.parent, exist_ok=True)
        async with aiofiles.open(full_path, 'w') as f:
            await f.write(content)
        self.logger.debug("file_written", path=str(full_path))

    async def delete_file(self, path: Path) -> None:
        """Delete a file; missing files are ignored."""
        full_path = self._resolve_path(path)
        if await aiofiles.os.path.exists(full_path):
            await aiofiles.os.remove(full_path)
            self.logger.debug("file_deleted", path=str(full_path))

    async def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        return await aiofiles.os.path.exists(self._resolve_path(path))

    async def is_dir(self, path: Path) -> bool:
        """Check if path is a directory."""
        return await aiofiles.os.path.isdir(self._resolve_path(path))

    async def get_file_size(self, path: Path) -> int:
        """Get file size in bytes."""
        stat = await aiofiles.os.stat(self._resolve_path(path))
        return stat.st_size

    async def create_directory(self, path: Path) -> None:
        """Create a directory and its parents."""
        await aiofiles.os.makedirs(self._resolve_path(path), exist_ok=True)

    async def remove_tree(self, path: Path) -> None:
        """Remove a directory tree; missing paths are ignored."""
        full_path = self._resolve_path(path)
        if await aiofiles.os.path.isdir(full_path):
            await asyncio.get_running_loop().run_in_executor(None, shutil.rmtree, full_path)
            self.logger.debug("directory_removed", path=str(full_path))

    async def copy_tree(
        self,
        src: Path,
        dst: Path,
        exclude: Iterable[str] = DEFAULT_EXCLUDES,
    ) -> None:
        """Copy a directory recursively, skipping any entry named in exclude."""
        src_path = self._resolve_path(src)
        dst_path = self._resolve_path(dst)
        ignore = shutil.ignore_patterns(*exclude)

        def do_copy():
            shutil.copytree(src_path, dst_path, ignore=ignore, symlinks=True, dirs_exist_ok=True)

        await asyncio.get_running_loop().run_in_executor(None, do_copy)
        self.logger.debug("directory_copied", src=str(src_path), dst=str(dst_path))

    async def archive_directory(self, src: Path, archive_path: Path) -> None:
        """
        Pack the contents of src into a gzip tarball (paths relative to src).

        The tarball is written beside archive_path and renamed into place, so
        archive_path never holds a partial archive.
        """
        src_path = self._resolve_path(src)
        archive = self._resolve_path(archive_path)
        partial = archive.with_name(archive.name + ".partial")

        def do_archive():
            archive.parent.mkdir(parents=True, exist_ok=True)
            try:
                with tarfile.open(partial, "w:gz") as tar:
                    for entry in sorted(src_path.iterdir()):
                        tar.add(entry, arcname=entry.name)
                os.replace(partial, archive)
            finally:
                if partial.exists():
                    partial.unlink()

        await asyncio.get_running_loop().run_in_executor(None, do_archive)
        self.logger.debug("directory_archived", src=str(src_path), archive=str(archive))

    async def extract_archive(self, archive_path: Path, dst: Path) -> None:
        """Extract a gzip tarball into dst, refusing members that escape it."""
        archive = self._resolve_path(archive_path)
        dst_path = self._resolve_path(dst)

        def do_extract():
            dst_path.mkdir(parents=True, exist_ok=True)
            safe_extract(archive, dst_path)

        await asyncio.get_running_loop().run_in_executor(None, do_extract)
        self.logger.debug("archive_extracted", archive=str(archive), dst=str(dst_path))

    def render_template(self, template_str: str, context: Dict[str, Any]) -> str:
        """Render a Jinja2 template string with context."""
        template = self.jinja_env.from_string(template_str)
        return template.render(**context)

    def _resolve_path(self, path: Path) -> Path:
        """Resolve a path relative to base_dir if not absolute."""
        if path is None:
            return self.base_dir
        path = Path(path)
        if path.is_absolute():
            return path
        return self.base_dir / path
