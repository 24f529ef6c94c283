"""Builders turn a build request into a deployable artifact."""

from .base import Builder, BuildOptions
from .nodejs_builder import NodeJSBuilder
from .factory import BuilderFactory, NODEJS_FRAMEWORKS

__all__ = [
    "Builder",
    "BuildOptions",
    "NodeJSBuilder",
    "BuilderFactory",
    "NODEJS_FRAMEWORKS",
]
