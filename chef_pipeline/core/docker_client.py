"""
Docker Client - Docker SDK integration for building, pushing and exporting images.

Provides:
- Streaming image builds that stop at the first engine error
- Registry push
- Copying a directory out of a throwaway container as a gzip tarball
"""

import asyncio
import tarfile
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import docker
from docker.errors import DockerException

from .errors import ArtifactExtractionError, BuildCommandError, BuildEngineError
from .logger import get_logger


@dataclass
class DockerBuildResult:
    """Result of a Docker build operation."""
    image_id: Optional[str]
    image_tag: str
    build_logs: List[str] = field(default_factory=list)


class DockerClient:
    """
    Docker SDK wrapper.

    The SDK is synchronous; every call runs in the default executor. Build log
    streaming checks a stop flag per message so a cancelled caller releases the
    worker thread at the next progress event.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self.logger = get_logger("DockerClient")
        self._client = client

    async def initialize(self) -> None:
        """Connect to the engine from environment settings and ping it."""
        if self._client is not None:
            return

        loop = asyncio.get_running_loop()

        def connect():
            client = docker.from_env()
            client.ping()
            return client

        try:
            self._client = await loop.run_in_executor(None, connect)
        except (DockerException, OSError) as e:
            raise BuildEngineError(f"docker engine unreachable: {e}") from e
        self.logger.info("docker_connected")

    async def ping(self) -> bool:
        try:
            await self.initialize()
            return await asyncio.get_running_loop().run_in_executor(None, self._client.ping)
        except (BuildEngineError, DockerException, OSError):
            return False

    async def build(
        self,
        path: Path,
        tag: str,
        no_cache: bool = False,
    ) -> DockerBuildResult:
        """
        Build an image from the Dockerfile in path.

        Raises:
            BuildCommandError: The engine reported an error while building
            BuildEngineError: The engine could not be reached or rejected the request
        """
        await self.initialize()
        loop = asyncio.get_running_loop()
        stop = threading.Event()

        def do_build():
            logs = []
            image_id = None
            stream = self._client.api.build(
                path=str(path),
                tag=tag,
                dockerfile="Dockerfile",
                nocache=no_cache,
                rm=True,
                forcerm=True,
                decode=True,
            )
            for chunk in stream:
                if stop.is_set():
                    raise BuildEngineError("build aborted")
                if not isinstance(chunk, dict):
                    continue

                if "error" in chunk:
                    raise BuildCommandError(chunk["error"].strip())

                line = chunk.get("stream", "").strip()
                if line:
                    logs.append(line)
                    self.logger.debug("docker_build_output", output=line)
                elif "status" in chunk:
                    self.logger.debug("docker_status", status=chunk["status"], id=chunk.get("id"))

                if "ID" in chunk.get("aux", {}):
                    image_id = chunk["aux"]["ID"]
            return image_id, logs

        self.logger.info("docker_build_started", tag=tag)
        try:
            image_id, logs = await loop.run_in_executor(None, do_build)
        except asyncio.CancelledError:
            stop.set()
            raise
        except (DockerException, OSError) as e:
            raise BuildEngineError(f"docker build failed: {e}") from e

        self.logger.info("docker_build_succeeded", tag=tag, image_id=image_id)
        return DockerBuildResult(image_id=image_id, image_tag=tag, build_logs=logs)

    async def push(self, tag: str) -> Optional[str]:
        """
        Push an image to its registry.

        Returns:
            The pushed digest, when the registry reports one
        """
        await self.initialize()
        loop = asyncio.get_running_loop()

        def do_push():
            digest = None
            for line in self._client.images.push(tag, stream=True, decode=True):
                if "error" in line:
                    raise BuildEngineError(f"push failed: {line['error']}")
                digest = line.get("aux", {}).get("Digest", digest)
            return digest

        self.logger.info("docker_push_started", tag=tag)
        try:
            digest = await loop.run_in_executor(None, do_push)
        except (DockerException, OSError) as e:
            raise BuildEngineError(f"push failed: {e}") from e

        self.logger.info("docker_push_succeeded", tag=tag, digest=digest)
        return digest

    async def export_directory(self, image: str, container_path: str, archive_path: Path) -> Path:
        """
        Copy container_path out of a throwaway container created from image.

        The archive holds the directory's contents at its root. The container
        is removed whether or not the copy succeeded.

        Raises:
            ArtifactExtractionError: If the container or copy fails
        """
        await self.initialize()
        loop = asyncio.get_running_loop()
        prefix = Path(container_path).name + "/"

        def do_export():
            container = self._client.containers.create(image)
            try:
                bits, _ = container.get_archive(container_path)
                with tempfile.SpooledTemporaryFile(max_size=16 * 1024 * 1024) as raw:
                    for chunk in bits:
                        raw.write(chunk)
                    raw.seek(0)
                    archive_path.parent.mkdir(parents=True, exist_ok=True)
                    with tarfile.open(fileobj=raw, mode="r:") as src, \
                            tarfile.open(archive_path, "w:gz") as dst:
                        for member in src:
                            if not member.name.startswith(prefix):
                                continue
                            data = src.extractfile(member) if member.isfile() else None
                            member.name = member.name[len(prefix):]
                            if member.islnk() and member.linkname.startswith(prefix):
                                member.linkname = member.linkname[len(prefix):]
                            dst.addfile(member, data)
            finally:
                try:
                    container.remove(v=True, force=True)
                except (DockerException, OSError) as e:
                    self.logger.warning("container_remove_failed", container=container.id, error=str(e))

        try:
            await loop.run_in_executor(None, do_export)
        except (DockerException, OSError, tarfile.TarError) as e:
            raise ArtifactExtractionError(f"failed to export {container_path} from {image}: {e}") from e

        self.logger.info("artifact_exported", image=image, archive=str(archive_path))
        return archive_path

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
