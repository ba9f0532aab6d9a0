"""Exception taxonomy for the composition engine."""
from __future__ import annotations

from typing import Any, Optional


class CompositionError(Exception):
    """Base class for every error raised by the engine."""


class ImageDecodeFailure(CompositionError):
    """A single image reference could not be turned into a bitmap.

    The loader absorbs these per item; they only surface inside a
    :class:`~memory_composer.models.LoadReport`.
    """

    def __init__(self, reference: Any, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Failed to decode {reference}: {reason}")


class NoUsableImages(CompositionError):
    """Raised when not a single reference of a batch could be decoded."""

    def __init__(self, attempted: int = 0, report: Any = None):
        self.attempted = attempted
        self.report = report
        super().__init__("cannot compose: no images available")


class InvalidParameter(CompositionError, ValueError):
    """A layout, effect or composition parameter is outside its domain."""

    def __init__(self, name: str, value: Any, reason: Optional[str] = None):
        self.name = name
        self.value = value
        message = f"Invalid value for {name}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class SurfaceAllocationFailure(CompositionError):
    """The raster surface for a render could not be allocated."""


class EncodeFailure(CompositionError):
    """The composed surface could not be encoded or written."""


class RenderCancelled(CompositionError):
    """The caller cancelled the render before the exporter returned."""


__all__ = [
    "CompositionError",
    "ImageDecodeFailure",
    "NoUsableImages",
    "InvalidParameter",
    "SurfaceAllocationFailure",
    "EncodeFailure",
    "RenderCancelled",
]
