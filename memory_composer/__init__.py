"""Memory Composer: collage, book cover and mashup rendering with photo effects."""

from .cache import ImageCache
from .compositor import Compositor, render
from .errors import (
    CompositionError,
    EncodeFailure,
    ImageDecodeFailure,
    InvalidParameter,
    NoUsableImages,
    RenderCancelled,
    SurfaceAllocationFailure,
)
from .exporter import encode, save, suggest_filename, to_data_url
from .layouts import available_layouts, compute_layout
from .loader import ResourceLoader
from .models import (
    CompositionResult,
    CompositionSpec,
    DecodedImage,
    ImageReference,
    LayoutKind,
    LayoutParams,
    LoadFailure,
    LoadReport,
    Placement,
    Template,
    references_from_records,
)
from .themes import Theme, ThemeRegistry
from .utils.effects import EffectParameters, PRESETS, apply_effects, get_preset, preset_names

__version__ = "1.0.0"

__all__ = [
    "Compositor",
    "CompositionError",
    "CompositionResult",
    "CompositionSpec",
    "DecodedImage",
    "EffectParameters",
    "EncodeFailure",
    "ImageCache",
    "ImageDecodeFailure",
    "ImageReference",
    "InvalidParameter",
    "LayoutKind",
    "LayoutParams",
    "LoadFailure",
    "LoadReport",
    "NoUsableImages",
    "PRESETS",
    "Placement",
    "RenderCancelled",
    "ResourceLoader",
    "SurfaceAllocationFailure",
    "Template",
    "Theme",
    "ThemeRegistry",
    "apply_effects",
    "available_layouts",
    "compute_layout",
    "encode",
    "get_preset",
    "preset_names",
    "references_from_records",
    "render",
    "save",
    "suggest_filename",
    "to_data_url",
]
