"""Integration tests for the build-and-deploy pipeline."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kubernetes import client

from chef_pipeline.builders.factory import BuilderFactory
from chef_pipeline.core.docker_client import DockerBuildResult
from chef_pipeline.core.errors import ClusterAPIError
from chef_pipeline.deployers.cluster_deployer import REVISION_ANNOTATION, ClusterDeployer
from chef_pipeline.deployers.static_deployer import StaticDeployer
from chef_pipeline.models.build import BuildStatus
from chef_pipeline.pipeline.orchestrator import Pipeline
from chef_pipeline.validators.nodejs_validator import NodeJSValidator


class FlakyStaticDeployer(StaticDeployer):
    """Publishes the files, then reports a failure for chosen builds."""

    def __init__(self, config, fail_builds):
        super().__init__(config)
        self.fail_builds = set(fail_builds)

    async def deploy(self, build):
        await super().deploy(build)
        if build.id in self.fail_builds:
            raise OSError("post-deploy health check failed")


def _validator(config):
    return NodeJSValidator(config.nodejs, config.max_artifact_size)


def _site(root):
    return {str(p.relative_to(root)): p.read_text() for p in sorted(root.rglob("*")) if p.is_file()}


def _replica_set(revision, image):
    return client.V1ReplicaSet(
        metadata=client.V1ObjectMeta(
            name=f"shop-{revision}",
            labels={"app": "shop"},
            annotations={REVISION_ANNOTATION: revision},
        ),
        spec=client.V1ReplicaSetSpec(
            selector=client.V1LabelSelector(match_labels={"app": "shop"}),
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(containers=[client.V1Container(name="shop", image=image)]),
            ),
        ),
    )


class TestStaticPipeline:
    """Builds published to a static directory."""

    @pytest.mark.asyncio
    async def test_build_is_served(self, pipeline_config, builder_factory, builder_behaviour, make_build):
        builder_behaviour.files = {"index.html": "<h1>v1</h1>", "assets/app.js": "boot()"}
        pipeline = Pipeline(pipeline_config, builder_factory, StaticDeployer(pipeline_config.deploy),
                            _validator(pipeline_config))

        await pipeline.start_build(make_build("b1"))
        build = await pipeline.wait_for_build("b1", timeout=5)

        assert build.status == BuildStatus.SUCCESS
        assert _site(pipeline_config.deploy.static_path / "shop") == {
            "assets/app.js": "boot()",
            "index.html": "<h1>v1</h1>",
        }
        assert not (pipeline_config.build_dir / "b1").exists()
        assert not (pipeline_config.cache_dir / "b1").exists()
        assert Path(build.artifact_path).is_file()

    @pytest.mark.asyncio
    async def test_failed_deploy_restores_previous_site(
        self, pipeline_config, builder_factory, builder_behaviour, make_build
    ):
        deployer = FlakyStaticDeployer(pipeline_config.deploy, fail_builds=["b2"])
        pipeline = Pipeline(pipeline_config, builder_factory, deployer, _validator(pipeline_config))
        live = pipeline_config.deploy.static_path / "shop"

        builder_behaviour.files = {"index.html": "v1"}
        await pipeline.start_build(make_build("b1"))
        first = await pipeline.wait_for_build("b1", timeout=5)
        assert first.status == BuildStatus.SUCCESS

        builder_behaviour.files = {"index.html": "v2", "broken.js": "oops()"}
        await pipeline.start_build(make_build("b2"))
        second = await pipeline.wait_for_build("b2", timeout=5)

        assert second.status == BuildStatus.FAILED
        assert second.failed_step == "deploy"
        assert second.error_message == "deployment failed: post-deploy health check failed"
        assert second.rollback_error is None
        assert _site(live) == {"index.html": "v1"}

    @pytest.mark.asyncio
    async def test_failed_first_deploy_leaves_nothing(
        self, pipeline_config, builder_factory, make_build
    ):
        deployer = FlakyStaticDeployer(pipeline_config.deploy, fail_builds=["b1"])
        pipeline = Pipeline(pipeline_config, builder_factory, deployer, _validator(pipeline_config))

        await pipeline.start_build(make_build("b1"))
        build = await pipeline.wait_for_build("b1", timeout=5)

        assert build.status == BuildStatus.FAILED
        assert not (pipeline_config.deploy.static_path / "shop").exists()


class TestClusterPipeline:
    """Builds rolled out to a cluster."""

    @pytest.mark.asyncio
    async def test_deploy_and_redeploy(self, pipeline_config, builder_factory, fake_cluster, make_build):
        pipeline_config.deploy.platform = "kubernetes"
        pipeline = Pipeline(pipeline_config, builder_factory, ClusterDeployer(pipeline_config.deploy, fake_cluster),
                            _validator(pipeline_config))

        await pipeline.start_build(make_build("b1", commit_hash="abc"))
        await pipeline.wait_for_build("b1", timeout=5)
        await pipeline.start_build(make_build("b2", commit_hash="def"))
        second = await pipeline.wait_for_build("b2", timeout=5)

        assert second.status == BuildStatus.SUCCESS
        assert fake_cluster.count("deployment") == 1
        live = await fake_cluster.get_deployment("default", "shop")
        assert live.spec.template.spec.containers[0].image == "chef-shop:def"

    @pytest.mark.asyncio
    async def test_failed_rollout_reverts_image(self, pipeline_config, builder_factory, fake_cluster, make_build):
        pipeline_config.deploy.platform = "kubernetes"
        pipeline = Pipeline(pipeline_config, builder_factory, ClusterDeployer(pipeline_config.deploy, fake_cluster),
                            _validator(pipeline_config))
        await pipeline.start_build(make_build("b1", commit_hash="abc"))
        await pipeline.wait_for_build("b1", timeout=5)

        fake_cluster.replica_sets = [_replica_set("1", "chef-shop:abc"), _replica_set("2", "chef-shop:def")]
        fake_cluster.update_ingress = AsyncMock(side_effect=ClusterAPIError("update ingress failed: 500 Internal", 500))

        await pipeline.start_build(make_build("b2", commit_hash="def"))
        build = await pipeline.wait_for_build("b2", timeout=5)

        assert build.status == BuildStatus.FAILED
        assert build.error_message == "deployment failed: update ingress failed: 500 Internal"
        assert build.rollback_error is None
        live = await fake_cluster.get_deployment("default", "shop")
        assert live.spec.template.spec.containers[0].image == "chef-shop:abc"

    @pytest.mark.asyncio
    async def test_rollback_failure_is_recorded(self, pipeline_config, builder_factory, fake_cluster, make_build):
        pipeline_config.deploy.platform = "kubernetes"
        fake_cluster.update_service = AsyncMock(side_effect=ClusterAPIError("update service failed: 403 Forbidden", 403))
        pipeline = Pipeline(pipeline_config, builder_factory, ClusterDeployer(pipeline_config.deploy, fake_cluster),
                            _validator(pipeline_config))
        await pipeline.start_build(make_build("b1"))
        await pipeline.wait_for_build("b1", timeout=5)

        await pipeline.start_build(make_build("b2"))
        build = await pipeline.wait_for_build("b2", timeout=5)

        assert build.status == BuildStatus.FAILED
        assert build.error_message == "deployment failed: update service failed: 403 Forbidden"
        assert build.rollback_error == "no previous revision available for rollback"
        assert pipeline.get_metrics("b2").warning_count == 1


class TestDockerBuildPipeline:
    """The real Node.js builder driven against a stubbed engine."""

    @pytest.mark.asyncio
    async def test_nodejs_builder_end_to_end(self, pipeline_config, site_archive, make_build):
        engine = MagicMock()
        engine.build = AsyncMock(return_value=DockerBuildResult(image_id="sha256:1", image_tag="chef-shop:b1"))

        async def export(image, container_path, archive_path):
            return site_archive(archive_path, {"index.html": f"built from {image}"})

        engine.export_directory = AsyncMock(side_effect=export)

        with patch("chef_pipeline.builders.nodejs_builder.DockerClient", return_value=engine):
            pipeline = Pipeline(
                pipeline_config,
                BuilderFactory(pipeline_config),
                StaticDeployer(pipeline_config.deploy),
                _validator(pipeline_config),
            )
            await pipeline.start_build(make_build("b1"))
            build = await pipeline.wait_for_build("b1", timeout=5)

        assert build.status == BuildStatus.SUCCESS, build.error_message
        assert build.image_id == "chef-shop:b1"
        assert _site(pipeline_config.deploy.static_path / "shop") == {"index.html": "built from chef-shop:b1"}
        engine.close.assert_called_once()
        assert not (pipeline_config.build_dir / "b1").exists()
