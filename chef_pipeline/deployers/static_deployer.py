"""
Static deployer - publishes artifacts into a directory served by a web server.

Layout under ``static_path``:
    <project_id>/           live files for a project
    backups/<build_id>.tar.gz
                            what <project_id>/ held before build_id was deployed
    backups/<build_id>.initial
                            build_id was the first deployment of the project
"""

import asyncio
import os
import shutil
import tarfile
from pathlib import Path

from ..config import DeployConfig
from ..core.errors import (
    ArtifactValidationError,
    BuildConfigError,
    DeploymentIOError,
)
from ..core.file_manager import FileManager
from ..core.logger import get_logger
from ..core.security import InputValidator
from ..models.build import Build
from ..utils.helpers import format_size
from .base import Deployer

BACKUP_DIR = "backups"


class StaticDeployer(Deployer):
    """Extracts artifacts into ``<static_path>/<project_id>``."""

    platform = "static"

    def __init__(self, config: DeployConfig):
        super().__init__(config)
        self.files = FileManager()
        self.logger = get_logger("StaticDeployer")

    @property
    def static_root(self) -> Path:
        return Path(self.config.static_path)

    def target_dir(self, build: Build) -> Path:
        project_id = InputValidator.validate_path_component(build.project_id)
        if project_id == BACKUP_DIR:
            raise BuildConfigError(f"project id '{BACKUP_DIR}' is reserved")
        return self.static_root / project_id

    def backup_path(self, build: Build) -> Path:
        build_id = InputValidator.validate_path_component(build.id)
        return self.static_root / BACKUP_DIR / f"{build_id}.tar.gz"

    def marker_path(self, build: Build) -> Path:
        build_id = InputValidator.validate_path_component(build.id)
        return self.static_root / BACKUP_DIR / f"{build_id}.initial"

    def validate(self, build: Build) -> None:
        if not build.artifact_path:
            raise ArtifactValidationError("artifact path is required")

        try:
            size = os.stat(build.artifact_path).st_size
        except FileNotFoundError as e:
            raise ArtifactValidationError(f"artifact not found: {build.artifact_path}") from e
        except OSError as e:
            raise DeploymentIOError(f"failed to stat artifact: {e}") from e

        if size > self.config.max_deploy_size:
            raise ArtifactValidationError(
                f"artifact size {format_size(size)} exceeds maximum allowed size "
                f"{format_size(self.config.max_deploy_size)}"
            )
        self.target_dir(build)

    async def deploy(self, build: Build) -> None:
        target = self.target_dir(build)
        self.logger.info("static_deploy_started", project=build.project_id, target=str(target))

        try:
            await self.files.create_directory(self.static_root)
            await self._record_prior_state(target, build)
            await self._replace(Path(build.artifact_path), target, build)
        except (OSError, tarfile.TarError) as e:
            raise DeploymentIOError(f"static deployment failed: {e}") from e

        self.logger.info("static_deploy_completed", project=build.project_id, location=str(target))

    async def rollback(self, build: Build) -> None:
        """
        Put ``<project_id>/`` back the way deploy found it.

        A backup means a previous deployment was live; a first-deploy marker
        means there was none. With neither, deploy failed before recording
        the prior state and the live directory was never touched.
        """
        target = self.target_dir(build)
        backup = self.backup_path(build)
        marker = self.marker_path(build)
        self.logger.info("static_rollback_started", project=build.project_id, backup=str(backup))

        try:
            if await self.files.exists(backup):
                await self._replace(backup, target, build)
            elif await self.files.exists(marker):
                await self.files.remove_tree(target)
                await self.files.delete_file(marker)
            else:
                self.logger.info("static_rollback_skipped", project=build.project_id, reason="nothing was replaced")
                return
        except (OSError, tarfile.TarError) as e:
            raise DeploymentIOError(f"failed to restore backup: {e}") from e

        self.logger.info("static_rollback_completed", project=build.project_id)

    async def _record_prior_state(self, target: Path, build: Build) -> None:
        if not await self.files.is_dir(target):
            self.logger.info("no_existing_deployment", project=build.project_id)
            await self.files.write_file(self.marker_path(build), "")
            return

        backup = self.backup_path(build)
        self.logger.info("creating_backup", project=build.project_id, backup_path=str(backup))
        await self.files.archive_directory(target, backup)

    async def _replace(self, archive: Path, target: Path, build: Build) -> None:
        """Extract archive beside target, then swap it in."""
        staging = target.with_name(f".{target.name}.{build.id}.staging")
        await self.files.remove_tree(staging)
        try:
            await self.files.extract_archive(archive, staging)
            await self.files.remove_tree(target)
            await asyncio.get_running_loop().run_in_executor(None, os.replace, staging, target)
        finally:
            if staging.exists():
                await asyncio.get_running_loop().run_in_executor(
                    None, lambda: shutil.rmtree(staging, ignore_errors=True)
                )
