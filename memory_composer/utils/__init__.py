"""Pure image helpers used by the composition engine."""

from . import effects, image_operations, validation

__all__ = ["effects", "image_operations", "validation"]
