"""
Base Deployer class.
Deployers publish a built artifact or image and can reverse that publication.
"""

from abc import ABC, abstractmethod

from ..config import DeployConfig
from ..models.build import Build


class Deployer(ABC):
    """
    Abstract base class for deployment strategies.

    The pipeline only talks to this contract, so it never needs to know which
    platform a build lands on.
    """

    platform: str = ""

    def __init__(self, config: DeployConfig):
        self.config = config

    @abstractmethod
    async def deploy(self, build: Build) -> None:
        """Publish build."""
        pass

    @abstractmethod
    async def rollback(self, build: Build) -> None:
        """Restore the state that existed before build was deployed."""
        pass

    @abstractmethod
    def validate(self, build: Build) -> None:
        """Check that build can be deployed with the current configuration."""
        pass
