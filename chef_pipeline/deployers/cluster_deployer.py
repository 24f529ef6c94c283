"""
Cluster deployer - runs built images on Kubernetes.

Each project gets a Deployment, a ClusterIP Service and an Ingress, all named
after the project and linked by the ``app=<project>`` label.
"""

from typing import Awaitable, Callable, List, Optional

from kubernetes import client

from ..config import DeployConfig
from ..core.cluster_client import ClusterClient
from ..core.errors import BuildConfigError, ResourceExistsError, RollbackError
from ..core.logger import get_logger
from ..models.build import Build
from ..utils.helpers import slugify
from .base import Deployer

CONTAINER_PORT = 80
REVISION_ANNOTATION = "deployment.kubernetes.io/revision"
CHANGE_CAUSE_ANNOTATION = "kubernetes.io/change-cause"
BUILD_ID_ANNOTATION = "chef.dev/build-id"


class ClusterDeployer(Deployer):
    """Create-or-update deployer for Kubernetes clusters."""

    platform = "kubernetes"

    def __init__(self, config: DeployConfig, cluster_client: Optional[ClusterClient] = None):
        super().__init__(config)
        self.cluster = cluster_client or ClusterClient(kubeconfig=config.kubeconfig)
        self.logger = get_logger("ClusterDeployer")

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def resource_name(self, build: Build) -> str:
        return slugify(build.project_id)

    def hostname(self, build: Build) -> str:
        return f"{self.resource_name(build)}.{self.config.ingress_domain}"

    def validate(self, build: Build) -> None:
        if not build.project_id:
            raise BuildConfigError("project ID is required for kubernetes deployment")
        if not build.image_id:
            raise BuildConfigError("image ID is required for kubernetes deployment")
        if not self.config.namespace:
            raise BuildConfigError("kubernetes namespace is not configured")
        if not self.config.ingress_domain:
            raise BuildConfigError("ingress domain is not configured")
        if self.config.replica_count < 1:
            raise BuildConfigError("replica count must be at least 1")

    async def deploy(self, build: Build) -> None:
        name = self.resource_name(build)
        self.logger.info("cluster_deploy_started", project=build.project_id, image=build.image_id, namespace=self.namespace)

        await self._apply("deployment", self.cluster.create_deployment, self.cluster.update_deployment,
                          self.build_deployment(build))
        await self._apply("service", self.cluster.create_service, self.cluster.update_service,
                          self.build_service(build))
        await self._apply("ingress", self.cluster.create_ingress, self.cluster.update_ingress,
                          self.build_ingress(build))

        self.logger.info("cluster_deploy_completed", project=build.project_id, name=name, host=self.hostname(build))

    async def rollback(self, build: Build) -> None:
        """
        Reapply the pod spec of the revision before the current one.

        Raises:
            RollbackError: Fewer than two revisions exist
            ClusterAPIError: The cluster rejected a call
        """
        name = self.resource_name(build)
        self.logger.info("cluster_rollback_started", project=build.project_id, name=name)

        deployment = await self.cluster.get_deployment(self.namespace, name)
        revisions = await self.cluster.list_replica_sets(self.namespace, f"app={name}")
        if len(revisions) < 2:
            raise RollbackError("no previous revision available for rollback")

        revisions = sorted(revisions, key=_revision_number, reverse=True)
        previous = revisions[1]

        deployment.spec.template.spec.containers = previous.spec.template.spec.containers
        if deployment.metadata.annotations is None:
            deployment.metadata.annotations = {}
        deployment.metadata.annotations[CHANGE_CAUSE_ANNOTATION] = (
            f"Rollback triggered by chef-pipeline after build {build.id}"
        )

        await self.cluster.update_deployment(self.namespace, deployment)
        self.logger.info(
            "cluster_rollback_completed",
            project=build.project_id,
            revision=_revision_number(previous),
        )

    async def _apply(
        self,
        kind: str,
        create: Callable[[str, object], Awaitable[object]],
        update: Callable[[str, object], Awaitable[object]],
        body: object,
    ) -> None:
        try:
            await create(self.namespace, body)
            self.logger.debug("resource_created", kind=kind, name=body.metadata.name)
        except ResourceExistsError:
            await update(self.namespace, body)
            self.logger.debug("resource_updated", kind=kind, name=body.metadata.name)

    def _labels(self, build: Build) -> dict:
        return {"app": self.resource_name(build)}

    def build_deployment(self, build: Build) -> client.V1Deployment:
        name = self.resource_name(build)
        pull_secrets: Optional[List[client.V1LocalObjectReference]] = None
        if self.config.pull_secret:
            pull_secrets = [client.V1LocalObjectReference(name=self.config.pull_secret)]

        return client.V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=client.V1ObjectMeta(name=name, namespace=self.namespace, labels=self._labels(build)),
            spec=client.V1DeploymentSpec(
                replicas=self.config.replica_count,
                selector=client.V1LabelSelector(match_labels=self._labels(build)),
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(
                        labels=self._labels(build),
                        annotations={BUILD_ID_ANNOTATION: build.id},
                    ),
                    spec=client.V1PodSpec(
                        containers=[
                            client.V1Container(
                                name=name,
                                image=build.image_id,
                                ports=[client.V1ContainerPort(container_port=CONTAINER_PORT)],
                            )
                        ],
                        image_pull_secrets=pull_secrets,
                    ),
                ),
            ),
        )

    def build_service(self, build: Build) -> client.V1Service:
        name = self.resource_name(build)
        return client.V1Service(
            api_version="v1",
            kind="Service",
            metadata=client.V1ObjectMeta(name=name, namespace=self.namespace, labels=self._labels(build)),
            spec=client.V1ServiceSpec(
                selector=self._labels(build),
                ports=[client.V1ServicePort(port=CONTAINER_PORT, target_port=CONTAINER_PORT)],
                type="ClusterIP",
            ),
        )

    def build_ingress(self, build: Build) -> client.V1Ingress:
        name = self.resource_name(build)
        return client.V1Ingress(
            api_version="networking.k8s.io/v1",
            kind="Ingress",
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=self.namespace,
                labels=self._labels(build),
                annotations={"nginx.ingress.kubernetes.io/rewrite-target": "/"},
            ),
            spec=client.V1IngressSpec(
                rules=[
                    client.V1IngressRule(
                        host=self.hostname(build),
                        http=client.V1HTTPIngressRuleValue(
                            paths=[
                                client.V1HTTPIngressPath(
                                    path="/",
                                    path_type="Prefix",
                                    backend=client.V1IngressBackend(
                                        service=client.V1IngressServiceBackend(
                                            name=name,
                                            port=client.V1ServiceBackendPort(number=CONTAINER_PORT),
                                        )
                                    ),
                                )
                            ]
                        ),
                    )
                ]
            ),
        )


def _revision_number(replica_set: client.V1ReplicaSet) -> int:
    annotations = (replica_set.metadata.annotations if replica_set.metadata else None) or {}
    try:
        return int(annotations.get(REVISION_ANNOTATION, "0"))
    except ValueError:
        return 0
