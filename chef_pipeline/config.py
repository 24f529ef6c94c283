"""
Configuration management for the build pipeline.
Handles all environment variables and settings.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

MB = 1024 * 1024


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def _env_map(name: str) -> Dict[str, str]:
    """Parse ``KEY=value,OTHER=value`` pairs."""
    pairs = {}
    for item in os.getenv(name, "").split(","):
        if "=" in item:
            key, value = item.split("=", 1)
            pairs[key.strip()] = value.strip()
    return pairs


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class NodeJSConfig:
    """Configuration for Node.js front-end builds."""
    default_version: str = field(default_factory=lambda: os.getenv("NODEJS_DEFAULT_VERSION", "20"))
    allowed_engines: List[str] = field(default_factory=lambda: _env_list("NODEJS_ALLOWED_ENGINES", "18,20,22,>=18,>=20"))
    max_build_time: int = field(default_factory=lambda: int(os.getenv("NODEJS_MAX_BUILD_TIME", "900")))
    build_cache: bool = field(default_factory=lambda: _env_bool("NODEJS_BUILD_CACHE", "true"))
    env_vars: Dict[str, str] = field(default_factory=lambda: _env_map("NODEJS_BUILD_ENV"))
    build_image: str = field(default_factory=lambda: os.getenv("NODEJS_BUILD_IMAGE", ""))
    serve_image: str = field(default_factory=lambda: os.getenv("NODEJS_SERVE_IMAGE", "nginx:alpine"))

    @property
    def runtime_image(self) -> str:
        """Image used for the dependency install and build stage."""
        return self.build_image or f"node:{self.default_version}-alpine"


@dataclass
class DeployConfig:
    """Configuration for publishing build output."""
    platform: str = field(default_factory=lambda: os.getenv("DEPLOY_PLATFORM", "static"))

    # Kubernetes
    namespace: str = field(default_factory=lambda: os.getenv("DEPLOY_NAMESPACE", "default"))
    ingress_domain: str = field(default_factory=lambda: os.getenv("DEPLOY_INGRESS_DOMAIN", ""))
    registry: str = field(default_factory=lambda: os.getenv("DEPLOY_REGISTRY", ""))
    pull_secret: str = field(default_factory=lambda: os.getenv("DEPLOY_PULL_SECRET", ""))
    replica_count: int = field(default_factory=lambda: int(os.getenv("DEPLOY_REPLICA_COUNT", "1")))
    kubeconfig: Optional[str] = field(default_factory=lambda: os.getenv("KUBECONFIG"))

    # Static hosting
    static_path: Path = field(default_factory=lambda: Path(os.getenv("DEPLOY_STATIC_PATH", "/var/www/html")))
    max_deploy_size: int = field(default_factory=lambda: int(os.getenv("DEPLOY_MAX_SIZE", str(100 * MB))))


@dataclass
class PipelineConfig:
    """Working directories and limits for the pipeline."""
    build_dir: Path = field(default_factory=lambda: Path(os.getenv("PIPELINE_BUILD_DIR", "/tmp/chef/builds")))
    artifacts_dir: Path = field(default_factory=lambda: Path(os.getenv("PIPELINE_ARTIFACTS_DIR", "/tmp/chef/artifacts")))
    cache_dir: Path = field(default_factory=lambda: Path(os.getenv("PIPELINE_CACHE_DIR", "/tmp/chef/cache")))
    default_timeout: int = field(default_factory=lambda: int(os.getenv("PIPELINE_DEFAULT_TIMEOUT", "1800")))
    max_artifact_size: int = field(default_factory=lambda: int(os.getenv("PIPELINE_MAX_ARTIFACT_SIZE", str(100 * MB))))
    max_retained_builds: int = field(default_factory=lambda: int(os.getenv("PIPELINE_MAX_RETAINED_BUILDS", "500")))

    nodejs: NodeJSConfig = field(default_factory=NodeJSConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)


@dataclass
class Config:
    """Main configuration container."""
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    verbose: bool = field(default_factory=lambda: _env_bool("VERBOSE", "false"))

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []
        deploy = self.pipeline.deploy

        if deploy.platform not in ("static", "kubernetes"):
            issues.append(f"DEPLOY_PLATFORM '{deploy.platform}' is not supported")

        if deploy.platform == "kubernetes":
            if not deploy.ingress_domain:
                issues.append("DEPLOY_INGRESS_DOMAIN is required for kubernetes deployments")
            if deploy.replica_count < 1:
                issues.append("DEPLOY_REPLICA_COUNT must be at least 1")
            if not deploy.registry:
                issues.append("DEPLOY_REGISTRY is recommended so the cluster can pull built images")

        if self.pipeline.default_timeout <= 0:
            issues.append("PIPELINE_DEFAULT_TIMEOUT must be positive")

        return issues

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls()


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the process-wide configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config
