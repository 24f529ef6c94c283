"""Build and artifact validators."""

from .base import Validator
from .nodejs_validator import NodeJSValidator

__all__ = ["Validator", "NodeJSValidator"]
