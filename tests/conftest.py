"""
Shared fixtures and in-memory collaborators for pipeline tests.
"""

import asyncio
import io
import json
import tarfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from chef_pipeline.builders.base import Builder, BuildOptions
from chef_pipeline.builders.factory import NODEJS_FRAMEWORKS, BuilderFactory
from chef_pipeline.config import DeployConfig, NodeJSConfig, PipelineConfig
from chef_pipeline.core.errors import (
    BuildConfigError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from chef_pipeline.deployers.base import Deployer
from chef_pipeline.models.build import Build, BuildResult
from chef_pipeline.validators.base import Validator


def write_site_archive(path: Path, files: Dict[str, str]) -> Path:
    """Write a gzip tarball holding files at its root."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


@dataclass
class BuilderBehaviour:
    """Knobs shared by every FakeBuilder a factory hands out."""
    error: Optional[Exception] = None
    gate: Optional[asyncio.Event] = None
    cleanup_gate: Optional[threading.Event] = None
    files: Dict[str, str] = field(default_factory=lambda: {"index.html": "<h1>hello</h1>"})
    started: List[str] = field(default_factory=list)
    builders: List["FakeBuilder"] = field(default_factory=list)


class FakeBuilder(Builder):
    """Builder that writes a real tarball without touching Docker."""

    def __init__(self, options: BuildOptions, behaviour: BuilderBehaviour):
        super().__init__(options)
        self.behaviour = behaviour
        self.cleanup_calls = 0

    def validate(self, build: Build) -> None:
        if not build.source_dir:
            raise BuildConfigError("source directory is required in builder configuration")

    async def build(self, build: Build) -> BuildResult:
        self.validate(build)
        self.behaviour.started.append(build.id)
        if self.behaviour.gate is not None:
            await self.behaviour.gate.wait()
        if self.behaviour.error is not None:
            raise self.behaviour.error

        artifact = Path(self.options.artifact_dir) / f"{build.id}.tar.gz"
        write_site_archive(artifact, self.behaviour.files)
        return BuildResult(
            success=True,
            artifact_path=str(artifact),
            image_id=f"chef-{build.project_id}:{build.commit_hash or build.id}",
        )

    def cleanup(self) -> None:
        self.cleanup_calls += 1
        if self.behaviour.cleanup_gate is not None:
            self.behaviour.cleanup_gate.wait(5)


class FakeDeployer(Deployer):
    """Deployer that records calls and fails on request."""

    platform = "fake"

    def __init__(self, config: DeployConfig):
        super().__init__(config)
        self.deploy_calls: List[str] = []
        self.rollback_calls: List[str] = []
        self.validate_calls: List[str] = []
        self.deploy_error: Optional[Exception] = None
        self.rollback_error: Optional[Exception] = None
        self.validate_error: Optional[Exception] = None
        self.deploy_gate: Optional[asyncio.Event] = None

    def validate(self, build: Build) -> None:
        self.validate_calls.append(build.id)
        if self.validate_error is not None:
            raise self.validate_error

    async def deploy(self, build: Build) -> None:
        self.deploy_calls.append(build.id)
        if self.deploy_gate is not None:
            await self.deploy_gate.wait()
        if self.deploy_error is not None:
            raise self.deploy_error

    async def rollback(self, build: Build) -> None:
        self.rollback_calls.append(build.id)
        if self.rollback_error is not None:
            raise self.rollback_error


class RejectingValidator(Validator):
    """Validator that refuses every build."""

    async def validate_build_config(self, build: Build) -> None:
        raise BuildConfigError("build command 'build' not found in package.json scripts")

    async def validate_artifact(self, artifact_path: str) -> None:
        raise AssertionError("artifact validation must not run")


class FakeClusterClient:
    """In-memory stand-in for ClusterClient."""

    def __init__(self):
        self.resources: Dict[Tuple[str, str, str], object] = {}
        self.replica_sets: List[object] = []
        self.calls: List[Tuple[str, str]] = []

    async def _create(self, kind, namespace, body):
        key = (kind, namespace, body.metadata.name)
        self.calls.append((f"create_{kind}", body.metadata.name))
        if key in self.resources:
            raise ResourceExistsError(f"create {kind} failed: 409 Conflict", status=409)
        self.resources[key] = body
        return body

    async def _update(self, kind, namespace, body):
        key = (kind, namespace, body.metadata.name)
        self.calls.append((f"update_{kind}", body.metadata.name))
        if key not in self.resources:
            raise ResourceNotFoundError(f"update {kind} failed: 404 Not Found", status=404)
        self.resources[key] = body
        return body

    async def _get(self, kind, namespace, name):
        self.calls.append((f"get_{kind}", name))
        try:
            return self.resources[(kind, namespace, name)]
        except KeyError:
            raise ResourceNotFoundError(f"get {kind} failed: 404 Not Found", status=404)

    async def create_deployment(self, namespace, deployment):
        return await self._create("deployment", namespace, deployment)

    async def update_deployment(self, namespace, deployment):
        return await self._update("deployment", namespace, deployment)

    async def get_deployment(self, namespace, name):
        return await self._get("deployment", namespace, name)

    async def create_service(self, namespace, service):
        return await self._create("service", namespace, service)

    async def update_service(self, namespace, service):
        return await self._update("service", namespace, service)

    async def get_service(self, namespace, name):
        return await self._get("service", namespace, name)

    async def create_ingress(self, namespace, ingress):
        return await self._create("ingress", namespace, ingress)

    async def update_ingress(self, namespace, ingress):
        return await self._update("ingress", namespace, ingress)

    async def get_ingress(self, namespace, name):
        return await self._get("ingress", namespace, name)

    async def list_replica_sets(self, namespace, label_selector):
        self.calls.append(("list_replica_sets", label_selector))
        key, _, value = label_selector.partition("=")
        return [
            rs for rs in self.replica_sets
            if (rs.metadata.labels or {}).get(key) == value
        ]

    def count(self, kind: str) -> int:
        return sum(1 for key in self.resources if key[0] == kind)


@pytest.fixture
def react_project(tmp_path):
    """A minimal React project with a build script."""
    project = tmp_path / "react-app"
    (project / "src").mkdir(parents=True)
    (project / "package.json").write_text(json.dumps({
        "name": "react-app",
        "version": "1.0.0",
        "scripts": {"build": "vite build", "test": "vitest"},
        "engines": {"node": "20"},
        "dependencies": {"react": "^18.2.0"},
    }))
    (project / "src" / "main.jsx").write_text("console.log('hi')\n")
    return project


@pytest.fixture
def pipeline_config(tmp_path):
    """Pipeline settings rooted in a temporary directory."""
    return PipelineConfig(
        build_dir=tmp_path / "work" / "builds",
        artifacts_dir=tmp_path / "work" / "artifacts",
        cache_dir=tmp_path / "work" / "cache",
        default_timeout=30,
        max_artifact_size=10 * 1024 * 1024,
        max_retained_builds=50,
        nodejs=NodeJSConfig(
            default_version="20",
            allowed_engines=["18", "20", ">=18"],
            max_build_time=60,
            build_cache=True,
            env_vars={"VITE_API_URL": "https://api.example.com"},
            build_image="",
            serve_image="nginx:alpine",
        ),
        deploy=DeployConfig(
            platform="static",
            namespace="default",
            ingress_domain="apps.example.com",
            registry="",
            pull_secret="",
            replica_count=2,
            kubeconfig=None,
            static_path=tmp_path / "www",
            max_deploy_size=10 * 1024 * 1024,
        ),
    )


@pytest.fixture
def builder_behaviour():
    return BuilderBehaviour()


@pytest.fixture
def builder_factory(pipeline_config, builder_behaviour):
    """BuilderFactory whose Node.js frameworks build with FakeBuilder."""
    factory = BuilderFactory(pipeline_config)

    def make(config, options):
        builder = FakeBuilder(options, builder_behaviour)
        builder_behaviour.builders.append(builder)
        return builder

    for framework in NODEJS_FRAMEWORKS:
        factory.register(framework, make)
    return factory


@pytest.fixture
def fake_deployer(pipeline_config):
    return FakeDeployer(pipeline_config.deploy)


@pytest.fixture
def fake_cluster():
    return FakeClusterClient()


@pytest.fixture
def make_build(react_project):
    """Factory for build requests against the sample project."""
    def make(build_id: str = "b1", **overrides) -> Build:
        fields = {
            "id": build_id,
            "project_id": "shop",
            "framework": "react",
            "build_command": "build",
            "output_dir": "build",
            "builder_config": {"sourceDir": str(react_project)},
        }
        fields.update(overrides)
        return Build(**fields)
    return make


@pytest.fixture
def wait_until():
    """Poll a predicate from async tests."""
    async def wait(predicate, timeout: float = 5.0, interval: float = 0.01):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(interval)
    return wait


@pytest.fixture
def rejecting_validator():
    return RejectingValidator()


@pytest.fixture
def site_archive():
    """Writer for gzip tarballs shaped like exported build output."""
    return write_site_archive
