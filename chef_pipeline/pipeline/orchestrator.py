"""
Pipeline Orchestrator - owns the build registry and drives each build through
validation, build, artifact validation, deployment and rollback.

Lifecycle:
    pending -> building -> success | failed | cancelled

Terminal states are final. Every build runs as its own asyncio task; callers
poll with ``get_build`` and cancel with ``cancel_build`` from any thread.
"""

import asyncio
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..builders.base import Builder, BuildOptions
from ..builders.factory import BuilderFactory
from ..config import PipelineConfig, get_config
from ..core.build_context import BuildContext
from ..core.cluster_client import ClusterClient
from ..core.errors import (
    BuildCommandError,
    BuildNotFoundError,
    DeploymentError,
    DuplicateBuildError,
    InvalidBuildStateError,
)
from ..core.logger import get_logger
from ..core.metrics import BuildMetrics, MetricsCollector
from ..core.security import InputValidator
from ..deployers.base import Deployer
from ..deployers.factory import create_deployer
from ..models.build import Build, BuildStatus
from ..validators.base import Validator
from ..validators.nodejs_validator import NodeJSValidator
from .cleanup import CleanupManager

STEP_CONTEXT = "context"
STEP_BUILDER = "builder"
STEP_BUILD = "build"
STEP_ARTIFACT = "artifact"
STEP_DEPLOY = "deploy"
STEP_TIMEOUT = "timeout"

STEP_LABELS = {
    STEP_CONTEXT: "failed to create build context",
    STEP_BUILDER: "failed to create builder",
    STEP_BUILD: "build failed",
    STEP_ARTIFACT: "artifact validation failed",
    STEP_DEPLOY: "deployment failed",
}


@dataclass
class _Execution:
    """Bookkeeping for one running build."""
    build: Build
    log: Any
    step: str = STEP_CONTEXT
    context: Optional[BuildContext] = None
    builder: Optional[Builder] = None


class Pipeline:
    """
    Build-and-deploy orchestrator.

    Usage:
        pipeline = Pipeline.from_config()
        await pipeline.start_build(build)
        final = await pipeline.wait_for_build(build.id)
    """

    def __init__(
        self,
        config: PipelineConfig,
        builder_factory: BuilderFactory,
        deployer: Deployer,
        validator: Validator,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.builder_factory = builder_factory
        self.deployer = deployer
        self.validator = validator
        self.metrics = metrics or MetricsCollector(config.max_retained_builds)
        self.logger = get_logger("Pipeline")

        self._builds: "OrderedDict[str, Build]" = OrderedDict()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(
        cls,
        config: Optional[PipelineConfig] = None,
        cluster_client: Optional[ClusterClient] = None,
    ) -> "Pipeline":
        """Wire the default builder factory, deployer, validator and metrics."""
        config = config or get_config().pipeline
        return cls(
            config=config,
            builder_factory=BuilderFactory(config),
            deployer=create_deployer(config.deploy, cluster_client),
            validator=NodeJSValidator(config.nodejs, config.max_artifact_size),
            metrics=MetricsCollector(config.max_retained_builds),
        )

    # Public API

    async def start_build(self, build: Build) -> None:
        """
        Validate build and launch it in the background.

        Raises:
            ValidationError: The request is malformed; nothing is registered
            DuplicateBuildError: A build with the same id is already registered
        """
        InputValidator.validate_path_component(build.id)
        await self.validator.validate_build_config(build)

        record = build.snapshot()
        record.status = BuildStatus.PENDING
        loop = asyncio.get_running_loop()

        with self._lock:
            if build.id in self._builds:
                raise DuplicateBuildError(f"build already exists: {build.id}")
            self._builds[build.id] = record
            task = loop.create_task(self._execute_build(record), name=f"build-{build.id}")
            self._tasks[build.id] = task
            self._evict()

        task.add_done_callback(lambda _, build_id=build.id: self._forget_task(build_id))
        self.logger.info("build_registered", build_id=build.id, project=build.project_id, framework=build.framework)

    def get_build(self, build_id: str) -> Build:
        """
        Return a snapshot of the build.

        Raises:
            BuildNotFoundError: If build_id is unknown
        """
        with self._lock:
            build = self._builds.get(build_id)
            if build is None:
                raise BuildNotFoundError(build_id)
            return build.snapshot()

    def cancel_build(self, build_id: str) -> None:
        """
        Cancel a build that is currently building.

        The running task is signalled; it stops at its next await point.

        Raises:
            BuildNotFoundError: If build_id is unknown
            InvalidBuildStateError: If the build is not building
        """
        with self._lock:
            build = self._builds.get(build_id)
            if build is None:
                raise BuildNotFoundError(build_id)
            if build.status != BuildStatus.BUILDING:
                raise InvalidBuildStateError(f"cannot cancel build with status: {build.status.value}")

            if build.cancel_handle is not None:
                build.cancel_handle()
                build.cancel_handle = None
            build.status = BuildStatus.CANCELLED
            build.complete_time = datetime.now()

        self.logger.info("build_cancel_requested", build_id=build_id)

    def list_builds(self, status: Optional[BuildStatus] = None) -> List[Build]:
        """Snapshots of registered builds, oldest first."""
        with self._lock:
            return [
                build.snapshot()
                for build in self._builds.values()
                if status is None or build.status == status
            ]

    async def wait_for_build(self, build_id: str, timeout: Optional[float] = None) -> Build:
        """
        Wait until the build's task has finished and return its final snapshot.

        Raises:
            BuildNotFoundError: If build_id is unknown
            asyncio.TimeoutError: If timeout expires first
        """
        with self._lock:
            if build_id not in self._builds:
                raise BuildNotFoundError(build_id)
            task = self._tasks.get(build_id)

        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return self.get_build(build_id)

    def get_metrics(self, build_id: str) -> Optional[BuildMetrics]:
        return self.metrics.get_metrics(build_id)

    def cleanup_stale_dirs(self, max_age_seconds: float) -> List[Path]:
        """Sweep stale working directories, sparing builds this pipeline is still running."""
        with self._lock:
            active = list(self._tasks)
        return CleanupManager(self.config).cleanup_old_builds(max_age_seconds, active=active)

    async def shutdown(self) -> None:
        """Cancel in-flight builds and wait for their tasks to finish."""
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        # Tasks cancelled before their first step never left pending
        with self._lock:
            pending = [b for b in self._builds.values() if b.status == BuildStatus.PENDING]
        for build in pending:
            self._finish(build, BuildStatus.CANCELLED)
        self.logger.info("pipeline_shutdown", cancelled=len(tasks))

    # Execution

    async def _execute_build(self, build: Build) -> None:
        task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        execution = _Execution(build=build, log=self.logger.bind(build_id=build.id, project=build.project_id))

        with self._lock:
            build.status = BuildStatus.BUILDING
            build.start_time = datetime.now()
            build.cancel_handle = lambda: loop.call_soon_threadsafe(task.cancel)

        try:
            self.metrics.start_build(build.id)
            execution.log.info("build_started", framework=build.framework)

            timeout = self.config.default_timeout or None
            await asyncio.wait_for(self._run_steps(execution), timeout=timeout)
            execution.log.info("build_succeeded", artifact=build.artifact_path, image=build.image_id)

        except asyncio.CancelledError:
            self._finish(build, BuildStatus.CANCELLED)
            execution.log.info("build_cancelled", step=execution.step)

        except asyncio.TimeoutError:
            if self._finish(
                build,
                BuildStatus.FAILED,
                error=f"build timed out after {self.config.default_timeout}s during {execution.step}",
                step=STEP_TIMEOUT,
            ):
                self.metrics.record_error(build.id)
                execution.log.error("build_timed_out", step=execution.step, timeout=self.config.default_timeout)

        except Exception as e:
            self.metrics.record_error(build.id)
            message = f"{STEP_LABELS.get(execution.step, execution.step)}: {e}"
            self._finish(build, BuildStatus.FAILED, error=message, step=execution.step)
            execution.log.error("build_failed", step=execution.step, error=str(e), error_type=type(e).__name__)

        finally:
            # Runs outside the timeout; the status is already terminal here
            if await self._run_to_completion(self._release(execution)):
                execution.log.info("late_cancel_ignored", status=build.status.value)
            with self._lock:
                build.cancel_handle = None
                final_status = build.status.value
            self.metrics.end_build(build.id, final_status)

    async def _run_steps(self, execution: _Execution) -> None:
        build = execution.build
        config = self.config

        execution.step = STEP_CONTEXT
        execution.context = await BuildContext.create(
            build.id, config.build_dir, config.artifacts_dir, config.cache_dir
        )
        context = execution.context

        execution.step = STEP_BUILDER
        execution.builder = self.builder_factory.create_builder(
            build.framework,
            BuildOptions(
                work_dir=context.build_dir,
                cache_dir=context.cache_dir,
                artifact_dir=context.artifact_dir,
                environment=dict(config.nodejs.env_vars),
                timeout_seconds=config.nodejs.max_build_time,
            ),
        )

        execution.step = STEP_BUILD
        result = await execution.builder.build(build.snapshot())
        if not result.success or not result.artifact_path:
            raise BuildCommandError("builder did not produce an artifact")

        execution.step = STEP_ARTIFACT
        await self.validator.validate_artifact(result.artifact_path)
        with self._lock:
            build.artifact_path = result.artifact_path
            build.image_id = result.image_id
        execution.log.info("artifact_ready", artifact=result.artifact_path, image=result.image_id)

        execution.step = STEP_DEPLOY
        await self._deploy(execution)

    async def _deploy(self, execution: _Execution) -> None:
        """
        Deploy the artifact and record success in the same step.

        The build turns ``success`` as soon as the deployer returns, so a later
        cancel or timeout cannot relabel a live deployment. A cancel accepted
        while the deployer was finishing rolls the deployment back.
        """
        build = execution.build
        deployment = build.snapshot()

        try:
            self.deployer.validate(deployment)
        except Exception as e:
            # Nothing was applied, so there is nothing to roll back
            raise DeploymentError(str(e)) from e

        started = time.monotonic()
        execution.log.info("deploy_started", platform=self.deployer.platform)
        try:
            await self.deployer.deploy(deployment)
        except asyncio.CancelledError:
            execution.log.warning("deploy_interrupted")
            await self._run_to_completion(self._rollback(execution, deployment))
            raise
        except Exception as e:
            execution.log.error("deploy_failed", error=str(e))
            rollback_error = await self._rollback(execution, deployment)
            raise DeploymentError(str(e), rollback_error) from e
        finally:
            self.metrics.record_deploy(build.id, time.monotonic() - started)

        if not self._finish(build, BuildStatus.SUCCESS):
            execution.log.warning("deploy_cancelled_after_apply")
            await self._run_to_completion(self._rollback(execution, deployment))
            raise asyncio.CancelledError()
        execution.log.info("deploy_succeeded", platform=self.deployer.platform)

    async def _rollback(self, execution: _Execution, deployment: Build) -> Optional[BaseException]:
        """Best-effort rollback; the failure is recorded and returned, never raised."""
        try:
            await self.deployer.rollback(deployment)
        except Exception as e:
            with self._lock:
                execution.build.rollback_error = str(e)
            self.metrics.record_warning(execution.build.id)
            execution.log.error("rollback_failed", error=str(e))
            return e

        execution.log.info("rollback_succeeded")
        return None

    async def _release(self, execution: _Execution) -> None:
        """Builder cleanup, then removal of the build and cache directories."""
        if execution.builder is not None:
            try:
                await asyncio.get_running_loop().run_in_executor(None, execution.builder.cleanup)
            except Exception as e:
                self.metrics.record_warning(execution.build.id)
                execution.log.warning("builder_cleanup_failed", error=str(e))
        if execution.context is not None:
            await execution.context.cleanup()

    @staticmethod
    async def _run_to_completion(coro) -> bool:
        """Await coro even if this task is cancelled meanwhile; report whether it was."""
        inner = asyncio.ensure_future(coro)
        interrupted = False
        while not inner.done():
            try:
                await asyncio.shield(inner)
            except asyncio.CancelledError:
                interrupted = True
        inner.result()
        return interrupted

    # Registry

    def _finish(
        self,
        build: Build,
        status: BuildStatus,
        error: Optional[str] = None,
        step: Optional[str] = None,
    ) -> bool:
        """Move build to a terminal status unless it already has one."""
        with self._lock:
            if build.status.is_terminal:
                return False
            build.status = status
            build.complete_time = datetime.now()
            if error is not None:
                build.error_message = error
                build.failed_step = step
            return True

    def _forget_task(self, build_id: str) -> None:
        with self._lock:
            self._tasks.pop(build_id, None)

    def _evict(self) -> None:
        """Drop the oldest finished builds beyond the retention limit."""
        overflow = len(self._builds) - self.config.max_retained_builds
        if overflow <= 0:
            return
        finished = [
            build_id for build_id, build in self._builds.items()
            if build.status.is_terminal and build_id not in self._tasks
        ]
        for build_id in finished[:overflow]:
            del self._builds[build_id]
