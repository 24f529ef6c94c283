"""
Node.js project validator.
Checks package.json against the build request and the produced artifact against size limits.
"""

import json
from pathlib import Path
from typing import Any, Dict

from ..config import MB, NodeJSConfig
from ..core.errors import (
    ArtifactValidationError,
    BuildConfigError,
    OperationalError,
)
from ..core.file_manager import FileManager
from ..core.logger import get_logger
from ..models.build import Build
from ..utils.helpers import format_size
from .base import Validator


class NodeJSValidator(Validator):
    """Validator for npm based front-end projects."""

    def __init__(self, config: NodeJSConfig, max_artifact_size: int = 100 * MB):
        self.config = config
        self.max_artifact_size = max_artifact_size
        self.files = FileManager()
        self.logger = get_logger("NodeJSValidator")

    async def validate_build_config(self, build: Build) -> None:
        package = await self._read_package_json(build)
        self._validate_node_version(package)
        self._validate_build_script(package, build)
        self.logger.debug("build_config_valid", build_id=build.id, project=build.project_id)

    async def validate_artifact(self, artifact_path: str) -> None:
        if not artifact_path:
            raise ArtifactValidationError("artifact path is empty")

        try:
            size = await self.files.get_file_size(Path(artifact_path))
        except FileNotFoundError as e:
            raise ArtifactValidationError(f"artifact not found: {artifact_path}") from e
        except OSError as e:
            raise OperationalError(f"failed to stat artifact {artifact_path}: {e}") from e

        if size > self.max_artifact_size:
            raise ArtifactValidationError(
                f"artifact size {format_size(size)} exceeds maximum allowed size "
                f"{format_size(self.max_artifact_size)}"
            )

    async def _read_package_json(self, build: Build) -> Dict[str, Any]:
        source_dir = build.source_dir
        if not source_dir or not isinstance(source_dir, str):
            raise BuildConfigError("sourceDir is required in builder configuration")

        package_path = Path(source_dir) / "package.json"
        try:
            content = await self.files.read_file(package_path)
        except FileNotFoundError as e:
            raise BuildConfigError(f"package.json not found in {source_dir}") from e
        except OSError as e:
            raise OperationalError(f"failed to read {package_path}: {e}") from e

        try:
            package = json.loads(content)
        except json.JSONDecodeError as e:
            raise BuildConfigError(f"invalid package.json: {e}") from e

        if not isinstance(package, dict):
            raise BuildConfigError("invalid package.json: top level must be an object")
        return package

    def _validate_node_version(self, package: Dict[str, Any]) -> None:
        engines = package.get("engines") or {}
        node_version = engines.get("node") if isinstance(engines, dict) else None
        if not node_version:
            return

        # Exact match against the allow-list; ranges are listed explicitly
        if node_version not in self.config.allowed_engines:
            raise BuildConfigError(f"unsupported node version: {node_version}")

    def _validate_build_script(self, package: Dict[str, Any], build: Build) -> None:
        if not build.build_command:
            raise BuildConfigError("build command is required")

        scripts = package.get("scripts") or {}
        if not isinstance(scripts, dict) or build.build_command not in scripts:
            raise BuildConfigError(
                f"build command '{build.build_command}' not found in package.json scripts"
            )
