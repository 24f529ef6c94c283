"""Core module initialization."""

from .logger import get_logger, setup_logging, ConsoleReporter
from .errors import (
    PipelineError,
    ValidationError,
    BuildConfigError,
    UnsupportedFrameworkError,
    UnsupportedPlatformError,
    ArtifactValidationError,
    DuplicateBuildError,
    SecurityError,
    OperationalError,
    BuildEngineError,
    ArtifactExtractionError,
    DeploymentIOError,
    ClusterAPIError,
    ResourceExistsError,
    ResourceNotFoundError,
    BuildCommandError,
    RollbackError,
    DeploymentError,
    BuildNotFoundError,
    InvalidBuildStateError,
)
from .file_manager import FileManager
from .security import (
    InputValidator,
    SecretsMasker,
    safe_extract,
)
from .build_context import BuildContext
from .metrics import BuildMetrics, MetricsCollector
from .docker_client import DockerClient, DockerBuildResult
from .cluster_client import ClusterClient


__all__ = [
    "get_logger",
    "setup_logging",
    "ConsoleReporter",
    # Errors
    "PipelineError",
    "ValidationError",
    "BuildConfigError",
    "UnsupportedFrameworkError",
    "UnsupportedPlatformError",
    "ArtifactValidationError",
    "DuplicateBuildError",
    "SecurityError",
    "OperationalError",
    "BuildEngineError",
    "ArtifactExtractionError",
    "DeploymentIOError",
    "ClusterAPIError",
    "ResourceExistsError",
    "ResourceNotFoundError",
    "BuildCommandError",
    "RollbackError",
    "DeploymentError",
    "BuildNotFoundError",
    "InvalidBuildStateError",
    # Filesystem
    "FileManager",
    "BuildContext",
    # Security
    "InputValidator",
    "SecretsMasker",
    "safe_extract",
    # Metrics
    "BuildMetrics",
    "MetricsCollector",
    # Engines
    "DockerClient",
    "DockerBuildResult",
    "ClusterClient",
]
