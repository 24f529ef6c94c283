"""Build pipeline orchestration."""

from .orchestrator import Pipeline
from .cleanup import CleanupManager

__all__ = ["Pipeline", "CleanupManager"]
