"""
Security utilities for the build pipeline.

Provides:
- Path traversal prevention for build inputs and archive extraction
- Injection checks for values interpolated into build recipes
- Secrets masking in logs
"""

import re
import tarfile
from pathlib import Path, PurePosixPath
from typing import Dict

from .errors import SecurityError


class InputValidator:
    """
    Validates values that end up in paths, build recipes or resource names.
    """

    # npm script names: letters, digits and the separators npm users actually use
    SCRIPT_NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9:_.\-]*$')

    ENV_VAR_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

    # [registry[:port]/]name[/name...][:tag]
    DOCKER_IMAGE_PATTERN = re.compile(
        r'^(?:[a-z0-9.-]+(?::[0-9]+)?/)?[a-z0-9]+(?:[._-][a-z0-9]+)*'
        r'(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*(?::[A-Za-z0-9_][A-Za-z0-9_.-]{0,127})?$'
    )

    @staticmethod
    def validate_path_component(name: str) -> str:
        """Ensure name can be used as a single directory name."""
        if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
            raise SecurityError(f"Invalid path component: {name!r}")
        return name

    @staticmethod
    def validate_relative_path(path: str) -> str:
        """Ensure path is relative and never climbs out of its root."""
        pure = PurePosixPath(path)
        if not path or pure.is_absolute() or ".." in pure.parts:
            raise SecurityError(f"Path must be relative without '..': {path!r}")
        if any(char in path for char in ['"', "'", "\n", "$", "`"]):
            raise SecurityError(f"Suspicious characters in path: {path!r}")
        return str(pure)

    @staticmethod
    def validate_script_name(name: str) -> str:
        """Ensure a package script name is safe to place in a RUN instruction."""
        if not InputValidator.SCRIPT_NAME_PATTERN.match(name or ""):
            raise SecurityError(f"Invalid build script name: {name!r}")
        return name

    @staticmethod
    def validate_env_var_name(name: str) -> bool:
        """
        Validate environment variable name.

        Raises:
            SecurityError: If name is invalid
        """
        if not InputValidator.ENV_VAR_PATTERN.match(name):
            raise SecurityError(
                f"Invalid environment variable name: {name}"
            )
        return True

    @staticmethod
    def validate_docker_image(image_name: str) -> bool:
        """
        Validate Docker image reference format.

        Raises:
            SecurityError: If image reference is invalid
        """
        if not InputValidator.DOCKER_IMAGE_PATTERN.match(image_name or ""):
            raise SecurityError(f"Invalid Docker image name: {image_name}")
        return True


def safe_extract(archive_path: Path, target_dir: Path) -> None:
    """
    Extract a gzip tarball, refusing members that would land outside target_dir.

    Raises:
        SecurityError: If any member escapes the target or is a device/fifo
    """
    target = Path(target_dir).resolve()
    with tarfile.open(archive_path, "r:gz") as tar:
        members = tar.getmembers()
        for member in members:
            if member.isdev() or member.isfifo():
                raise SecurityError(f"Refusing special file in archive: {member.name}")
            destination = (target / member.name).resolve()
            if destination != target and target not in destination.parents:
                raise SecurityError(f"Archive member escapes target directory: {member.name}")
            if member.issym() or member.islnk():
                link_base = destination.parent if member.issym() else target
                link_target = (link_base / member.linkname).resolve()
                if link_target != target and target not in link_target.parents:
                    raise SecurityError(f"Archive link escapes target directory: {member.name}")
        tar.extractall(target, members=members)


class SecretsMasker:
    """
    Masks secrets in logs and output to prevent exposure.
    """

    SECRET_KEY_WORDS = ("password", "token", "key", "secret", "auth", "credential")

    @staticmethod
    def mask_secrets(text: str) -> str:
        """Mask ``name=value`` pairs whose name suggests a secret."""
        return re.sub(
            r'(password|token|key|secret)[\s=:]+[^\s]+',
            r'\1=***REDACTED***',
            text,
            flags=re.IGNORECASE
        )

    @staticmethod
    def mask_dict(data: Dict[str, str]) -> Dict[str, str]:
        """
        Mask values of a flat mapping (e.g. a build environment overlay).

        Returns:
            Copy of data with secret-looking values redacted
        """
        masked = {}

        for key, value in data.items():
            if any(word in key.lower() for word in SecretsMasker.SECRET_KEY_WORDS):
                masked[key] = '***REDACTED***'
            elif isinstance(value, str):
                masked[key] = SecretsMasker.mask_secrets(value)
            else:
                masked[key] = value

        return masked
