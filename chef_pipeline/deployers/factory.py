"""
Deployer factory - selects the deployment strategy for the configured platform.
"""

from typing import Optional

from ..config import DeployConfig
from ..core.cluster_client import ClusterClient
from ..core.errors import UnsupportedPlatformError
from .base import Deployer
from .cluster_deployer import ClusterDeployer
from .static_deployer import StaticDeployer


def create_deployer(config: DeployConfig, cluster_client: Optional[ClusterClient] = None) -> Deployer:
    """
    Create the deployer for ``config.platform``.

    Raises:
        UnsupportedPlatformError: If the platform is not "static" or "kubernetes"
    """
    if config.platform == "kubernetes":
        return ClusterDeployer(config, cluster_client)
    if config.platform == "static":
        return StaticDeployer(config)
    raise UnsupportedPlatformError(config.platform)
