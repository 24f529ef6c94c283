"""
Builder factory - maps framework tags to builder implementations.
"""

from typing import Callable, Dict, List

from ..config import PipelineConfig
from ..core.errors import UnsupportedFrameworkError
from ..core.logger import get_logger
from .base import Builder, BuildOptions
from .nodejs_builder import NodeJSBuilder

BuilderConstructor = Callable[[PipelineConfig, BuildOptions], Builder]

NODEJS_FRAMEWORKS = ("react", "vue", "svelte", "angular")


def _nodejs_builder(config: PipelineConfig, options: BuildOptions) -> Builder:
    return NodeJSBuilder(config.nodejs, options, registry=config.deploy.registry)


class BuilderFactory:
    """
    Creates a fresh builder per build.

    Framework tags are case sensitive and there is no fallback builder.
    """

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.logger = get_logger("BuilderFactory")
        self._constructors: Dict[str, BuilderConstructor] = {
            framework: _nodejs_builder for framework in NODEJS_FRAMEWORKS
        }

    def register(self, framework: str, constructor: BuilderConstructor) -> None:
        """Register (or replace) the builder used for framework."""
        self._constructors[framework] = constructor

    @property
    def frameworks(self) -> List[str]:
        return sorted(self._constructors)

    def create_builder(self, framework: str, options: BuildOptions) -> Builder:
        constructor = self._constructors.get(framework)
        if constructor is None:
            raise UnsupportedFrameworkError(framework)
        self.logger.debug("builder_created", framework=framework, work_dir=str(options.work_dir))
        return constructor(self.config, options)
