# surface.py
"""
Raster surface lifecycle: one explicitly allocated surface per render,
released as soon as the exporter has consumed it.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Union

import psutil
from PIL import Image

from . import config
from .errors import SurfaceAllocationFailure
from .utils.validation import validate_dimensions

LOGGER = logging.getLogger(__name__)

BYTES_PER_PIXEL = {"RGB": 4, "RGBA": 4, "L": 1}  # Pillow pads RGB to 32 bits


def surface_bytes(width: int, height: int, mode: str = "RGB") -> int:
    return width * height * BYTES_PER_PIXEL.get(mode, 4)


def check_surface_budget(width: int, height: int, mode: str = "RGB") -> None:
    """Refuse surfaces that are too large for the configured limits or free memory."""
    validate_dimensions(width, height)
    if max(width, height) > config.MAX_CANVAS_DIMENSION:
        raise SurfaceAllocationFailure(
            f"Requested surface {width}x{height} exceeds the maximum dimension "
            f"of {config.MAX_CANVAS_DIMENSION}px"
        )
    needed = surface_bytes(width, height, mode)
    try:
        available = psutil.virtual_memory().available
    except (psutil.Error, OSError) as e:
        LOGGER.warning("Memory check failed: %s", e)
        return
    budget = int(available * config.SURFACE_MEMORY_FRACTION)
    if needed > budget:
        raise SurfaceAllocationFailure(
            f"Surface {width}x{height} needs {needed >> 20} MB, only {budget >> 20} MB allowed"
        )


def new_surface(width: int, height: int, background: Union[str, tuple] = config.DEFAULT_BACKGROUND,
                mode: str = "RGB") -> Image.Image:
    """Allocate a surface filled with ``background``; the caller owns it."""
    check_surface_budget(width, height, mode)
    try:
        return Image.new(mode, (width, height), background)
    except MemoryError as e:
        raise SurfaceAllocationFailure(f"Out of memory allocating {width}x{height} surface") from e
    except ValueError as e:
        raise SurfaceAllocationFailure(f"Cannot allocate {mode} surface {width}x{height}: {e}") from e


@contextmanager
def allocated_surface(width: int, height: int, background: Union[str, tuple] = config.DEFAULT_BACKGROUND,
                      mode: str = "RGB") -> Iterator[Image.Image]:
    """Allocate a surface for the duration of a ``with`` block and release it afterwards.

    The surface is closed on every exit path, including cancellation and
    errors raised while drawing.
    """
    surface = new_surface(width, height, background, mode)
    try:
        yield surface
    finally:
        surface.close()
        LOGGER.debug("Released %dx%d surface", width, height)
