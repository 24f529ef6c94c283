"""Helper utilities."""

import re
import uuid
from typing import Optional, Tuple

IMAGE_PREFIX = "chef"

_TAG_INVALID = re.compile(r"[^A-Za-z0-9_.-]")


def slugify(text: str, max_length: int = 63) -> str:
    """
    Convert text to a DNS-1123 label usable as a resource name.

    Args:
        text: Text to convert
        max_length: Maximum length (Kubernetes names are capped at 63)

    Returns:
        Slugified text
    """
    slug = text.lower()
    slug = slug.replace(" ", "-").replace("_", "-").replace(".", "-")
    slug = re.sub(r'[^a-z0-9-]', '', slug)
    slug = re.sub(r'-+', '-', slug)
    slug = slug.strip('-')

    if len(slug) > max_length:
        slug = slug[:max_length].rstrip('-')

    return slug or "unnamed"


def image_reference(
    project_id: str,
    build_id: str,
    commit_hash: Optional[str] = None,
    registry: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Deterministic image repository and tag for a build.

    The tag is the commit hash when one is known, otherwise the build id.

    Returns:
        (repository, tag)
    """
    repository = f"{IMAGE_PREFIX}-{slugify(project_id)}"
    if registry:
        repository = f"{registry.rstrip('/')}/{repository}"

    tag = _TAG_INVALID.sub("-", commit_hash or build_id)[:128].lstrip(".-")
    return repository, tag or "latest"


def generate_id(prefix: str = "", length: int = 8) -> str:
    """
    Generate a unique identifier.

    Args:
        prefix: Optional prefix for the ID
        length: Length of the random portion

    Returns:
        Unique identifier string
    """
    random_part = str(uuid.uuid4()).replace("-", "")[:length]

    if prefix:
        return f"{prefix}-{random_part}"
    return random_part


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def format_size(num_bytes: int) -> str:
    """Format a byte count for error messages."""
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = num_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"
