"""
Base Validator class.
Validators run static checks on build requests and produced artifacts.
"""

from abc import ABC, abstractmethod

from ..models.build import Build


class Validator(ABC):
    """
    Abstract base class for framework validators.

    Implementations raise a ValidationError subclass for caller mistakes and an
    OperationalError for environment failures. They never mutate the build.
    """

    @abstractmethod
    async def validate_build_config(self, build: Build) -> None:
        """Check the build request before it is registered."""
        pass

    @abstractmethod
    async def validate_artifact(self, artifact_path: str) -> None:
        """Check the artifact produced by a builder."""
        pass
