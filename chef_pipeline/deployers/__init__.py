"""Deployment strategies."""

from .base import Deployer
from .static_deployer import StaticDeployer
from .cluster_deployer import ClusterDeployer
from .factory import create_deployer

__all__ = [
    "Deployer",
    "StaticDeployer",
    "ClusterDeployer",
    "create_deployer",
]
