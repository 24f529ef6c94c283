"""
Node.js builder - builds npm front-end projects inside Docker.

Source is copied into an isolated context, a two-stage Dockerfile runs the
project's build script in a Node image, and the output directory is served
from an nginx image. The served files are then exported as the artifact.
"""

import asyncio
import json
import shutil
import time
from pathlib import Path
from typing import Optional

from ..config import NodeJSConfig
from ..core.docker_client import DockerClient
from ..core.errors import BuildCommandError, BuildConfigError
from ..core.file_manager import FileManager
from ..core.logger import get_logger
from ..core.security import InputValidator, SecretsMasker
from ..models.build import Build, BuildResult
from ..utils.helpers import image_reference
from .base import Builder, BuildOptions

SERVE_ROOT = "/usr/share/nginx/html"

DOCKERFILE_TEMPLATE = """\
FROM {{ runtime_image }} AS builder

WORKDIR /app

# Native build dependencies for node-gyp modules
RUN apk add --no-cache python3 make g++

COPY package*.json ./
RUN {{ install_command }}

COPY . .

ENV NODE_ENV=production
ENV CI=true
{% for name, value in env_vars %}
ENV {{ name }}={{ value }}
{% endfor %}

RUN npm run {{ build_command }}

FROM {{ serve_image }}
COPY --from=builder /app/{{ output_dir }} {{ serve_root }}
EXPOSE 80
"""

DOCKERIGNORE = "node_modules\n.git\n"


class NodeJSBuilder(Builder):
    """Builder for react, vue, svelte and angular projects."""

    def __init__(
        self,
        config: NodeJSConfig,
        options: BuildOptions,
        docker_client: Optional[DockerClient] = None,
        registry: str = "",
    ):
        super().__init__(options)
        self.config = config
        self.registry = registry
        self.docker = docker_client or DockerClient()
        self.files = FileManager()
        self.logger = get_logger("NodeJSBuilder")

    @property
    def context_dir(self) -> Path:
        return Path(self.options.work_dir) / "context"

    def validate(self, build: Build) -> None:
        if not build.build_command:
            raise BuildConfigError("build command is required")
        if not build.output_dir:
            raise BuildConfigError("output directory is required")
        if not build.builder_config:
            raise BuildConfigError("builder configuration is required")

        source_dir = build.source_dir
        if not source_dir or not isinstance(source_dir, str):
            raise BuildConfigError("source directory is required in builder configuration")

        source = Path(source_dir)
        if not source.is_dir():
            raise BuildConfigError(f"source directory does not exist: {source_dir}")
        if not (source / "package.json").is_file():
            raise BuildConfigError(f"package.json not found in source directory: {source_dir}")

        InputValidator.validate_script_name(build.build_command)
        InputValidator.validate_relative_path(build.output_dir)
        InputValidator.validate_docker_image(self.config.runtime_image)
        InputValidator.validate_docker_image(self.config.serve_image)
        for name in self.options.environment:
            InputValidator.validate_env_var_name(name)

    async def build(self, build: Build) -> BuildResult:
        """
        Build the project and export its served files.

        Raises:
            BuildConfigError: Missing or invalid source
            BuildEngineError: Docker unreachable or push rejected
            BuildCommandError: The project's build failed or ran out of time
            ArtifactExtractionError: Built files could not be exported
        """
        self.validate(build)
        started = time.monotonic()
        self.logger.info(
            "nodejs_build_started",
            build_id=build.id,
            project=build.project_id,
            commit=build.commit_hash,
            env=SecretsMasker.mask_dict(self.options.environment),
        )

        await self._prepare_context(build)

        repository, tag = image_reference(
            build.project_id, build.id, build.commit_hash, registry=self.registry or None
        )
        image_tag = f"{repository}:{tag}"

        build_coro = self.docker.build(
            self.context_dir,
            image_tag,
            no_cache=not self.config.build_cache,
        )
        timeout = self.options.timeout_seconds or None
        try:
            result = await asyncio.wait_for(build_coro, timeout=timeout)
        except asyncio.TimeoutError:
            raise BuildCommandError(f"build exceeded {self.options.timeout_seconds}s")

        digest = None
        if self.registry:
            digest = await self.docker.push(image_tag)

        artifact_path = Path(self.options.artifact_dir) / f"{build.id}.tar.gz"
        await self.docker.export_directory(image_tag, SERVE_ROOT, artifact_path)

        duration = time.monotonic() - started
        self.logger.info(
            "nodejs_build_succeeded",
            build_id=build.id,
            image=image_tag,
            artifact=str(artifact_path),
            duration=round(duration, 2),
        )
        return BuildResult(
            success=True,
            artifact_path=str(artifact_path),
            image_id=image_tag,
            image_digest=digest,
            duration_seconds=duration,
            logs=result.build_logs,
        )

    def render_dockerfile(self, build: Build) -> str:
        """Render the two-stage Dockerfile for build."""
        lockfile = Path(build.source_dir) / "package-lock.json"
        env_vars = [
            (name, json.dumps(str(value)))
            for name, value in sorted(self.options.environment.items())
        ]
        return self.files.render_template(DOCKERFILE_TEMPLATE, {
            "runtime_image": self.config.runtime_image,
            "serve_image": self.config.serve_image,
            "install_command": "npm ci" if lockfile.is_file() else "npm install",
            "env_vars": env_vars,
            "build_command": build.build_command,
            "output_dir": InputValidator.validate_relative_path(build.output_dir),
            "serve_root": SERVE_ROOT,
        })

    async def _prepare_context(self, build: Build) -> None:
        await self.files.remove_tree(self.context_dir)
        await self.files.copy_tree(Path(build.source_dir), self.context_dir)
        await self.files.write_file(self.context_dir / "Dockerfile", self.render_dockerfile(build))
        await self.files.write_file(self.context_dir / ".dockerignore", DOCKERIGNORE)

    def cleanup(self) -> None:
        self.logger.info("cleaning_up_builder", work_dir=str(self.options.work_dir))
        work_dir = Path(self.options.work_dir)
        if work_dir.is_dir():
            shutil.rmtree(work_dir)
        self.docker.close()
