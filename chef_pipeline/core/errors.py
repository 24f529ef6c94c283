"""
Error taxonomy for the build-and-deploy pipeline.

Three families matter to callers:
- ValidationError: the request itself is malformed. Never retried.
- OperationalError: the environment failed (engine unreachable, cluster API,
  filesystem). A new build may succeed, the pipeline does not auto-retry.
- BuildCommandError: the project's own build command failed inside the
  container. The engine's message is kept verbatim.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""
    retryable: bool = False


# Caller errors

class ValidationError(PipelineError):
    """Malformed input supplied by the caller."""


class BuildConfigError(ValidationError):
    """Build configuration or project manifest is invalid."""


class UnsupportedFrameworkError(ValidationError):
    """No builder is registered for the requested framework tag."""

    def __init__(self, framework: str):
        super().__init__(f"unsupported framework: {framework}")
        self.framework = framework


class UnsupportedPlatformError(ValidationError):
    """No deployer exists for the configured platform."""

    def __init__(self, platform: str):
        super().__init__(f"unsupported deployment platform: {platform}")
        self.platform = platform


class ArtifactValidationError(ValidationError):
    """Produced artifact is missing or violates size limits."""


class DuplicateBuildError(ValidationError):
    """A build with the same id is already registered."""


class SecurityError(ValidationError):
    """Input would escape its sandbox (path traversal, shell injection)."""


# Operational errors

class OperationalError(PipelineError):
    """Environment or infrastructure failure."""
    retryable = True


class BuildEngineError(OperationalError):
    """Container build engine is unreachable or returned an API error."""


class ArtifactExtractionError(OperationalError):
    """Built files could not be copied out of the image."""


class DeploymentIOError(OperationalError):
    """Filesystem failure while publishing or restoring static files."""


class ClusterAPIError(OperationalError):
    """Cluster API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ResourceExistsError(ClusterAPIError):
    """Create was rejected because the resource already exists."""


class ResourceNotFoundError(ClusterAPIError):
    """Requested resource does not exist."""


# Content errors

class BuildCommandError(PipelineError):
    """The project's build failed inside the build engine."""


# Deployment outcome

class RollbackError(PipelineError):
    """A deployment could not be reverted."""


class DeploymentError(PipelineError):
    """
    Deployment failed.

    The deploy failure is the primary cause (``__cause__``); the outcome of the
    compensating rollback is kept in ``rollback_error`` and never replaces it.
    """

    def __init__(self, message: str, rollback_error: Optional[BaseException] = None):
        super().__init__(message)
        self.rollback_error = rollback_error


# Registry errors

class BuildNotFoundError(PipelineError, LookupError):
    """No build is registered under the given id."""

    def __init__(self, build_id: str):
        super().__init__(f"build not found: {build_id}")
        self.build_id = build_id


class InvalidBuildStateError(PipelineError):
    """Operation is not allowed in the build's current status."""
