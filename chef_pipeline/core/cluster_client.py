"""
Cluster Client - Kubernetes API integration for workload deployment.

Provides:
- Create/update/get for deployments, services and ingresses
- Replica set listing for revision history
"""

import asyncio
import functools
from typing import Any, Callable, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .errors import ClusterAPIError, ResourceExistsError, ResourceNotFoundError
from .logger import get_logger


class ClusterClient:
    """
    Async wrapper over the Kubernetes Python client.

    Usage:
        cluster = ClusterClient(kubeconfig="~/.kube/config")
        await cluster.create_deployment("default", deployment)

    API errors are translated: 409 raises ResourceExistsError, 404 raises
    ResourceNotFoundError, anything else ClusterAPIError.
    """

    def __init__(self, kubeconfig: Optional[str] = None, api_client: Optional[client.ApiClient] = None):
        self.kubeconfig = kubeconfig
        self.logger = get_logger("ClusterClient")
        self._api_client = api_client
        self._apps = None
        self._core = None
        self._networking = None

    def _get_api_client(self) -> client.ApiClient:
        """Lazy-load the API client (in-cluster first, then kubeconfig)."""
        if self._api_client is None:
            configuration = client.Configuration()
            try:
                config.load_incluster_config(client_configuration=configuration)
                self.logger.info("cluster_config_loaded", source="incluster")
            except ConfigException:
                try:
                    config.load_kube_config(config_file=self.kubeconfig, client_configuration=configuration)
                except (ConfigException, OSError) as e:
                    raise ClusterAPIError(f"failed to load cluster configuration: {e}") from e
                self.logger.info("cluster_config_loaded", source=self.kubeconfig or "default kubeconfig")
            self._api_client = client.ApiClient(configuration)
        return self._api_client

    @property
    def apps(self) -> client.AppsV1Api:
        if self._apps is None:
            self._apps = client.AppsV1Api(self._get_api_client())
        return self._apps

    @property
    def core(self) -> client.CoreV1Api:
        if self._core is None:
            self._core = client.CoreV1Api(self._get_api_client())
        return self._core

    @property
    def networking(self) -> client.NetworkingV1Api:
        if self._networking is None:
            self._networking = client.NetworkingV1Api(self._get_api_client())
        return self._networking

    async def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
        except ApiException as e:
            message = f"{operation} failed: {e.status} {e.reason}"
            if e.status == 409:
                raise ResourceExistsError(message, status=e.status) from e
            if e.status == 404:
                raise ResourceNotFoundError(message, status=e.status) from e
            raise ClusterAPIError(message, status=e.status) from e
        except OSError as e:
            raise ClusterAPIError(f"{operation} failed: {e}") from e

    # Deployments

    async def create_deployment(self, namespace: str, deployment: client.V1Deployment) -> client.V1Deployment:
        return await self._call("create deployment", lambda: self.apps.create_namespaced_deployment(namespace, deployment))

    async def update_deployment(self, namespace: str, deployment: client.V1Deployment) -> client.V1Deployment:
        name = deployment.metadata.name
        return await self._call("update deployment", lambda: self.apps.patch_namespaced_deployment(name, namespace, deployment))

    async def get_deployment(self, namespace: str, name: str) -> client.V1Deployment:
        return await self._call("get deployment", lambda: self.apps.read_namespaced_deployment(name, namespace))

    # Services

    async def create_service(self, namespace: str, service: client.V1Service) -> client.V1Service:
        return await self._call("create service", lambda: self.core.create_namespaced_service(namespace, service))

    async def update_service(self, namespace: str, service: client.V1Service) -> client.V1Service:
        name = service.metadata.name
        return await self._call("update service", lambda: self.core.patch_namespaced_service(name, namespace, service))

    async def get_service(self, namespace: str, name: str) -> client.V1Service:
        return await self._call("get service", lambda: self.core.read_namespaced_service(name, namespace))

    # Ingresses

    async def create_ingress(self, namespace: str, ingress: client.V1Ingress) -> client.V1Ingress:
        return await self._call("create ingress", lambda: self.networking.create_namespaced_ingress(namespace, ingress))

    async def update_ingress(self, namespace: str, ingress: client.V1Ingress) -> client.V1Ingress:
        name = ingress.metadata.name
        return await self._call("update ingress", lambda: self.networking.patch_namespaced_ingress(name, namespace, ingress))

    async def get_ingress(self, namespace: str, name: str) -> client.V1Ingress:
        return await self._call("get ingress", lambda: self.networking.read_namespaced_ingress(name, namespace))

    # Revision history

    async def list_replica_sets(self, namespace: str, label_selector: str) -> List[client.V1ReplicaSet]:
        result = await self._call(
            "list replica sets",
            lambda: self.apps.list_namespaced_replica_set(namespace, label_selector=label_selector),
        )
        return list(result.items or [])

    def close(self) -> None:
        if self._api_client is not None:
            self._api_client.close()
