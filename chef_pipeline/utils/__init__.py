"""Utility functions for the build pipeline."""

from .helpers import slugify, image_reference, generate_id, format_duration, format_size

__all__ = ["slugify", "image_reference", "generate_id", "format_duration", "format_size"]
