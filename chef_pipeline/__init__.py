"""Container builds and deployments for front-end projects."""

__version__ = "0.1.0"
