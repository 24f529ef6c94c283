"""Data models for the build pipeline."""

from .build import Build, BuildResult, BuildStatus

__all__ = [
    "Build",
    "BuildResult",
    "BuildStatus",
]
