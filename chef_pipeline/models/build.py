"""
Build models for the build-and-deploy pipeline.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class BuildStatus(Enum):
    """Lifecycle status of a build."""
    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildStatus.SUCCESS, BuildStatus.FAILED, BuildStatus.CANCELLED)


@dataclass
class Build:
    """
    One request to build a source tree and publish the result.

    ``builder_config`` is framework specific and must carry ``sourceDir``.
    Lifecycle fields are owned by the pipeline; callers receive snapshots.
    """
    id: str
    project_id: str
    framework: str
    build_command: str = "build"
    output_dir: str = "dist"
    builder_config: Dict[str, Any] = field(default_factory=dict)
    commit_hash: Optional[str] = None

    # Lifecycle
    status: BuildStatus = BuildStatus.PENDING
    error_message: Optional[str] = None
    rollback_error: Optional[str] = None
    failed_step: Optional[str] = None
    artifact_path: Optional[str] = None
    image_id: Optional[str] = None
    start_time: Optional[datetime] = None
    complete_time: Optional[datetime] = None

    cancel_handle: Optional[Callable[[], None]] = field(default=None, repr=False, compare=False)

    @property
    def source_dir(self) -> Optional[str]:
        return self.builder_config.get("sourceDir")

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time and self.complete_time:
            return (self.complete_time - self.start_time).total_seconds()
        return None

    def snapshot(self) -> "Build":
        """Detached copy safe to hand to callers."""
        return replace(
            self,
            builder_config=copy.deepcopy(self.builder_config),
            cancel_handle=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "framework": self.framework,
            "build_command": self.build_command,
            "output_dir": self.output_dir,
            "builder_config": copy.deepcopy(self.builder_config),
            "commit_hash": self.commit_hash,
            "status": self.status.value,
            "error_message": self.error_message,
            "rollback_error": self.rollback_error,
            "failed_step": self.failed_step,
            "artifact_path": self.artifact_path,
            "image_id": self.image_id,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "complete_time": self.complete_time.isoformat() if self.complete_time else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Build":
        """Create from dictionary."""
        def parse_time(value):
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=data["id"],
            project_id=data["project_id"],
            framework=data["framework"],
            build_command=data.get("build_command", "build"),
            output_dir=data.get("output_dir", "dist"),
            builder_config=dict(data.get("builder_config") or {}),
            commit_hash=data.get("commit_hash"),
            status=BuildStatus(data.get("status", BuildStatus.PENDING.value)),
            error_message=data.get("error_message"),
            rollback_error=data.get("rollback_error"),
            failed_step=data.get("failed_step"),
            artifact_path=data.get("artifact_path"),
            image_id=data.get("image_id"),
            start_time=parse_time(data.get("start_time")),
            complete_time=parse_time(data.get("complete_time")),
        )


@dataclass
class BuildResult:
    """Result of a builder invocation."""
    success: bool
    artifact_path: Optional[str] = None
    image_id: Optional[str] = None
    image_digest: Optional[str] = None
    duration_seconds: float = 0.0
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "artifact_path": self.artifact_path,
            "image_id": self.image_id,
            "image_digest": self.image_digest,
            "duration_seconds": self.duration_seconds,
        }
