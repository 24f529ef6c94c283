"""
Base Builder class.
All framework builders inherit from this base.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from ..models.build import Build, BuildResult


@dataclass
class BuildOptions:
    """Per-invocation settings handed to a builder by the factory."""
    work_dir: Path
    cache_dir: Path
    artifact_dir: Path
    environment: Dict[str, str] = field(default_factory=dict)
    timeout_seconds: int = 0


class Builder(ABC):
    """
    Abstract base class for builders.

    A builder owns ``options.work_dir`` for its lifetime; ``cleanup`` releases
    it and must be safe to call whether or not ``build`` ran.
    """

    def __init__(self, options: BuildOptions):
        self.options = options

    @abstractmethod
    async def build(self, build: Build) -> BuildResult:
        """Produce an artifact for build."""
        pass

    @abstractmethod
    def validate(self, build: Build) -> None:
        """Check the fields this builder depends on."""
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Release working directory and engine resources."""
        pass
